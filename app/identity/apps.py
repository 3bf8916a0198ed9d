"""
Django app configuration for identity.
"""

from django.apps import AppConfig


class IdentityConfig(AppConfig):
    """Configuration for the identity application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "identity"
    verbose_name = "Identity"
