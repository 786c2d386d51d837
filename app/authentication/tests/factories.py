"""
Factory Boy factories for authentication models.

Provides realistic test data generation for:
- User: Custom user model with email-based authentication

Usage:
    from authentication.tests.factories import UserFactory

    # Create a user with default values
    user = UserFactory()

    # Create a user without a display name (falls back to email)
    user = UserFactory(display_name="")
"""

import factory

from authentication.models import User


class UserFactory(factory.django.DjangoModelFactory):
    """
    Factory for User model.

    Creates active users with a display name and an offline presence.

    Examples:
        # Basic user
        user = UserFactory()

        # Online user
        user = UserFactory(is_online=True)

        # Inactive user (deactivated)
        user = UserFactory(is_active=False)
    """

    class Meta:
        model = User
        skip_postgeneration_save = True

    email = factory.Sequence(lambda n: f"user{n}@example.com")
    display_name = factory.Sequence(lambda n: f"User {n}")
    is_active = True
    is_staff = False

    @classmethod
    def _create(cls, model_class, *args, **kwargs):
        """Override create to use UserManager.create_user()."""
        password = kwargs.pop("password", "TestPass123!")
        return model_class.objects.create_user(
            email=kwargs.pop("email"), password=password, **kwargs
        )
