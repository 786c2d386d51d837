"""
Django admin configuration for authentication models.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from authentication.models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Admin configuration for the email-based User model.

    Presence fields are read-only: they are owned by the realtime layer.
    """

    list_display = (
        "email",
        "display_name",
        "is_online",
        "last_seen",
        "is_active",
        "is_staff",
    )
    list_filter = ("is_online", "is_active", "is_staff", "is_superuser")
    search_fields = ("email", "display_name")
    ordering = ("-date_joined",)
    readonly_fields = ("is_online", "last_seen", "date_joined", "last_login")

    fieldsets = (
        (None, {"fields": ("email", "password")}),
        ("Identity", {"fields": ("display_name", "avatar_url")}),
        ("Presence", {"fields": ("is_online", "last_seen")}),
        (
            "Status",
            {"fields": ("is_active", "is_staff", "is_superuser", "groups", "user_permissions")},
        ),
        ("Important dates", {"fields": ("date_joined", "last_login")}),
    )
    add_fieldsets = (
        (
            None,
            {
                "classes": ("wide",),
                "fields": ("email", "display_name", "password1", "password2"),
            },
        ),
    )
