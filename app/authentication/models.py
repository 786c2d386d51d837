"""
Authentication models.

This module defines the User model: email-based authentication plus the
public identity and presence fields chat needs.

Fields owned by chat:
    is_online / last_seen are written only by chat.services.PresenceService.
    Every other code path treats them as read-only.

Related files:
    - managers.py: Custom user manager for email-based creation
    - chat/services.py: PresenceService (presence transitions)
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from authentication.managers import UserManager


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        email: Primary identifier, unique, used for login
        display_name: Public name shown to other chat participants
        avatar_url: Optional link to the user's avatar image
        is_online: True while the user has at least one live connection
        last_seen: When the user was last seen connecting or going offline
        is_active: Whether the user account is active
        is_staff: Whether the user can access Django admin
        date_joined: When the user account was created
        updated_at: When the user record was last modified
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )

    # Public identity
    display_name = models.CharField(
        max_length=150,
        blank=True,
        help_text="Public name shown to other participants",
    )
    avatar_url = models.URLField(
        max_length=500,
        blank=True,
        help_text="URL of the user's avatar image",
    )

    # Presence
    is_online = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether the user currently has a live realtime connection",
    )
    last_seen = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Last presence transition (connect or final disconnect)",
    )

    # Account status flags
    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    # Timestamps
    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        return self.email

    def get_display_name(self) -> str:
        """
        Return the name other participants see.

        Falls back to the local part of the email when no display name
        has been set.
        """
        if self.display_name:
            return self.display_name
        return self.email.split("@")[0]

    def get_full_name(self):
        return self.get_display_name()

    def get_short_name(self):
        return self.get_display_name()
