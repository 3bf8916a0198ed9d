"""
Django admin configuration for identity models.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from identity.models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Admin for the email-based User model."""

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
    ordering = ("display_name",)

    fieldsets = (
        (None, {"fields": ("email", "password")}),
        ("Profile", {"fields": ("display_name", "photo_url")}),
        ("Presence", {"fields": ("is_online", "last_seen")}),
        (
            "Status",
            {"fields": ("is_active", "is_staff", "is_superuser", "groups", "user_permissions")},
        ),
        ("Important dates", {"fields": ("date_joined", "last_login")}),
    )
    readonly_fields = ("date_joined", "last_login", "last_seen")

    add_fieldsets = (
        (
            None,
            {
                "classes": ("wide",),
                "fields": ("email", "display_name", "password1", "password2"),
            },
        ),
    )
