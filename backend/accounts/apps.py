# accounts/apps.py
"""Accounts app configuration."""

from django.apps import AppConfig


class AccountsConfig(AppConfig):
    """Configuration for the accounts app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "accounts"
    verbose_name = "Users, Roles & Permissions"

    def ready(self):
        """Register the users/roles/permissions table schemas."""
        from accounts import tables  # noqa: F401
