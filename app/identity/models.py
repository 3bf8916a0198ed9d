"""
Identity models.

User carries the profile snapshot the chat core displays (display name,
photo) and the presence flags flipped on sign-in/sign-out.

Related files:
    - managers.py: UserManager for email-based creation
    - services.py: IdentityService directory/presence operations
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from identity.managers import UserManager


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        email: Login identifier, unique
        display_name: Name shown to other participants
        photo_url: Optional avatar URL
        is_online: Set on sign-in, cleared on sign-out
        last_seen: Last presence change
        is_active: Inactive users are hidden from the directory
        is_staff: Admin site access
        date_joined: Account creation time
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )
    display_name = models.CharField(
        max_length=100,
        blank=True,
        help_text="Name shown in chat lists and message headers",
    )
    photo_url = models.URLField(
        max_length=500,
        blank=True,
        help_text="Optional avatar URL",
    )

    # Presence
    is_online = models.BooleanField(
        default=False,
        help_text="Whether the user is currently signed in",
    )
    last_seen = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When presence last changed",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )
    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["display_name", "id"]

    def __str__(self):
        return self.display_name or self.email

    def get_full_name(self):
        return self.display_name or self.email

    def get_short_name(self):
        return self.display_name or self.email.split("@")[0]
