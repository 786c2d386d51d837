"""
Serializers for authentication models.

Related files:
    - models.py: User model
    - chat/serializers.py: embeds UserSummarySerializer in participants
"""

from rest_framework import serializers

from authentication.models import User


class UserSummarySerializer(serializers.ModelSerializer):
    """
    Public view of a user as other chat participants see them.

    Includes presence so conversation lists can render online badges.
    """

    display_name = serializers.CharField(source="get_display_name", read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "display_name",
            "avatar_url",
            "is_online",
            "last_seen",
        ]
        read_only_fields = fields


class UserSerializer(serializers.ModelSerializer):
    """Serializer for the authenticated user's own record."""

    display_name = serializers.CharField(source="get_display_name", read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "email",
            "display_name",
            "avatar_url",
            "is_online",
            "last_seen",
            "date_joined",
        ]
        read_only_fields = fields
