"""
Subscription model: a time-boxed entitlement owned by a user.

A user accumulates Subscription rows over time (their history). Each row
starts ACTIVE when a payment is confirmed and then moves through the
lifecycle as time passes or the user cancels.

Usage:
    from billing.models import Subscription

    subscription = Subscription.objects.create(
        user=user,
        service="PREMIUM_ONE",
        start_date=now,
        end_date=service.period_end(now),
        source_payment=payment,
    )

    subscription.enter_grace_period(grace_period_end)  # ACTIVE -> GRACE_PERIOD
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.db import models

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from billing.state_machines import NoticeType, SubscriptionStatus

if TYPE_CHECKING:
    from datetime import datetime


class Subscription(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    One entitlement window in a user's subscription history.

    State Flow:
        ACTIVE -> GRACE_PERIOD (end_date passed)
        GRACE_PERIOD -> EXPIRED (grace_period_end passed)
        ACTIVE -> EXPIRED (superseded by a newer purchase)
        ACTIVE/GRACE_PERIOD -> CANCELLED (explicit cancellation)

    Invariants (enforced by check constraints):
        cancelled_at is set iff status == CANCELLED
        grace_period_end is set iff status in (GRACE_PERIOD, EXPIRED)

    Writes from services go through conditional updates keyed on the
    expected status; see billing.services.subscription_service.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="subscriptions",
        help_text="Entitled user",
    )

    source_payment = models.ForeignKey(
        "billing.Payment",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="subscriptions",
        help_text="Payment that granted this entitlement",
    )

    # ==========================================================================
    # Entitlement Window
    # ==========================================================================

    service = models.CharField(
        max_length=32,
        help_text="Catalog service code of the purchase",
    )

    start_date = models.DateTimeField(
        help_text="Start of the entitlement window",
    )

    end_date = models.DateTimeField(
        db_index=True,
        help_text="Nominal end of the entitlement window",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=SubscriptionStatus.ACTIVE,
        choices=SubscriptionStatus.choices,
        db_index=True,
        help_text="Current lifecycle state (managed by FSM)",
    )

    cancelled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the subscription was cancelled",
    )

    grace_period_end = models.DateTimeField(
        null=True,
        blank=True,
        help_text="End of the grace window, computed once on entering it",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Subscription"
        verbose_name_plural = "Subscriptions"
        indexes = [
            models.Index(fields=["user", "status"], name="billing_sub_user_id_3e6a9d_idx"),
            models.Index(fields=["status", "end_date"], name="billing_sub_status_7f2c5e_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(status=SubscriptionStatus.CANCELLED, cancelled_at__isnull=False)
                    | (
                        ~models.Q(status=SubscriptionStatus.CANCELLED)
                        & models.Q(cancelled_at__isnull=True)
                    )
                ),
                name="subscription_cancelled_at_iff_cancelled",
            ),
            models.CheckConstraint(
                condition=(
                    models.Q(
                        status__in=[
                            SubscriptionStatus.GRACE_PERIOD,
                            SubscriptionStatus.EXPIRED,
                        ],
                        grace_period_end__isnull=False,
                    )
                    | (
                        ~models.Q(
                            status__in=[
                                SubscriptionStatus.GRACE_PERIOD,
                                SubscriptionStatus.EXPIRED,
                            ]
                        )
                        & models.Q(grace_period_end__isnull=True)
                    )
                ),
                name="subscription_grace_end_iff_grace_or_expired",
            ),
        ]

    def __str__(self) -> str:
        return f"Subscription({self.id}, {self.service}, {self.status})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=SubscriptionStatus.ACTIVE,
        target=SubscriptionStatus.GRACE_PERIOD,
    )
    def enter_grace_period(self, grace_period_end: datetime) -> None:
        """ACTIVE -> GRACE_PERIOD. grace_period_end is fixed from here on."""
        self.grace_period_end = grace_period_end

    @transition(
        field=status,
        source=SubscriptionStatus.GRACE_PERIOD,
        target=SubscriptionStatus.EXPIRED,
    )
    def expire(self) -> None:
        """GRACE_PERIOD -> EXPIRED. Keeps the grace_period_end already set."""

    @transition(
        field=status,
        source=SubscriptionStatus.ACTIVE,
        target=SubscriptionStatus.EXPIRED,
    )
    def supersede(self, now: datetime) -> None:
        """
        ACTIVE -> EXPIRED when a newer purchase replaces this window.

        There is no grace window for a superseded entitlement, so it ends now.
        """
        self.grace_period_end = now

    @transition(
        field=status,
        source=[SubscriptionStatus.ACTIVE, SubscriptionStatus.GRACE_PERIOD],
        target=SubscriptionStatus.CANCELLED,
    )
    def cancel(self, now: datetime) -> None:
        """ACTIVE/GRACE_PERIOD -> CANCELLED."""
        self.cancelled_at = now
        self.grace_period_end = None

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_entitled(self) -> bool:
        return self.status in SubscriptionStatus.entitled()

    @property
    def is_in_grace_period(self) -> bool:
        return self.status == SubscriptionStatus.GRACE_PERIOD


class SubscriptionNotice(UUIDPrimaryKeyMixin, BaseModel):
    """
    Record of an expiry notice sent for a subscription.

    One row per (subscription, notice_type) so the daily notification sweep
    never sends the same warning twice.
    """

    subscription = models.ForeignKey(
        Subscription,
        on_delete=models.CASCADE,
        related_name="notices",
        help_text="Subscription the notice was about",
    )

    notice_type = models.CharField(
        max_length=32,
        choices=NoticeType.choices,
        help_text="Kind of notice sent",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Subscription notice"
        verbose_name_plural = "Subscription notices"
        constraints = [
            models.UniqueConstraint(
                fields=["subscription", "notice_type"],
                name="subscription_notice_once",
            ),
        ]

    def __str__(self) -> str:
        return f"SubscriptionNotice({self.subscription_id}, {self.notice_type})"
