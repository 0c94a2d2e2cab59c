"""
Account models.

User is the aggregate root for entitlements: a user owns a history of
billing.Subscription rows and carries the denormalized ``is_premium`` flag
that clients read to decide whether premium features are unlocked.

Related files:
    - managers.py: Email-based user creation
    - billing/services/subscription_service.py: Recomputes is_premium
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from accounts.managers import UserManager


class User(UUIDPrimaryKeyMixin, AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        email: Login identifier, unique
        is_premium: True while any subscription is ACTIVE or GRACE_PERIOD
        fcm_token: Push token registered by the mobile client
        is_active: Whether the user account is active
        is_staff: Whether the user can operate the admin endpoints
        date_joined: When the user account was created
        updated_at: When the user record was last modified

    Usage:
        user = User.objects.create_user(email="user@example.com")
        user.subscriptions.all()  # billing.Subscription history
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )

    is_premium = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Derived: user holds an ACTIVE or GRACE_PERIOD subscription",
    )
    fcm_token = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Firebase Cloud Messaging token for push notifications",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site and admin APIs.",
    )

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
