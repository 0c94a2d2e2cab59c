"""
Refund model: money returned against a verified Payment.

A Refund row is created PENDING by the refund ledger when an admin asks
for a refund, and moved to PROCESSED or FAILED exactly once, normally by a
signature-verified gateway webhook. Rows are never deleted.

Usage:
    from billing.models import Refund
    from billing.state_machines import RefundStatus

    refund = Refund.objects.create(payment=payment, amount=2500)

    refund.mark_processed(processed_at=timezone.now())  # PENDING -> PROCESSED
    refund.save()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import models

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from billing.state_machines import RefundSpeed, RefundStatus

if TYPE_CHECKING:
    from datetime import datetime


class Refund(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Tracks one refund issued against a payment.

    State Flow:
        PENDING -> PROCESSED
        PENDING -> FAILED

    Fields:
        refund_id: Gateway refund ID (rfnd_xxx); empty until the gateway
            accepts the request
        payment: Source Payment
        order_id: Gateway order ID of the source payment
        amount: Refund amount in smallest currency unit
        status: Current FSM state
        speed_requested/speed_processed: OPTIMUM or NORMAL
        user_email: Payment owner, denormalized for notifications
        processed_by: Admin who initiated it ("system" for gateway sync)
        processed_at/failed_at: Terminal timestamps
        acquirer_data: Bank references reported by the gateway (ARN, RRN)
        batch_id: Gateway settlement batch
        error_code/error_description: Failure details
        version: Optimistic locking version
    """

    # ==========================================================================
    # Relationships & Identifiers
    # ==========================================================================

    refund_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Gateway refund ID (rfnd_xxx)",
    )

    payment = models.ForeignKey(
        "billing.Payment",
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Payment being refunded",
    )

    order_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Gateway order ID of the source payment",
    )

    # ==========================================================================
    # Amount
    # ==========================================================================

    amount = models.PositiveBigIntegerField(
        help_text="Refund amount in smallest currency unit",
    )

    currency = models.CharField(
        max_length=3,
        default="INR",
        help_text="ISO 4217 currency code",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=RefundStatus.PENDING,
        choices=RefundStatus.choices,
        db_index=True,
        help_text="Current state of the refund (managed by FSM)",
    )

    speed_requested = models.CharField(
        max_length=10,
        choices=RefundSpeed.choices,
        default=RefundSpeed.NORMAL,
        help_text="Speed asked of the gateway",
    )

    speed_processed = models.CharField(
        max_length=10,
        choices=RefundSpeed.choices,
        null=True,
        blank=True,
        help_text="Speed the gateway actually used",
    )

    # ==========================================================================
    # People & Context
    # ==========================================================================

    user_email = models.EmailField(
        blank=True,
        default="",
        db_index=True,
        help_text="Email of the payment owner",
    )

    processed_by = models.CharField(
        max_length=254,
        blank=True,
        default="",
        help_text="Admin identity that initiated the refund",
    )

    reason = models.TextField(
        blank=True,
        default="",
        help_text="Why the refund was issued",
    )

    notes = models.TextField(
        blank=True,
        default="",
        help_text="Free-form comment sent to the gateway",
    )

    receipt = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Merchant receipt reference",
    )

    # ==========================================================================
    # Gateway Outcome
    # ==========================================================================

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the refund was processed",
    )

    failed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the refund failed",
    )

    acquirer_data = models.JSONField(
        default=dict,
        blank=True,
        help_text="Acquirer references (arn, rrn, utr)",
    )

    batch_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Gateway settlement batch ID",
    )

    error_code = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Failure code",
    )

    error_description = models.TextField(
        blank=True,
        default="",
        help_text="Failure description",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Refund"
        verbose_name_plural = "Refunds"
        indexes = [
            models.Index(fields=["payment", "status"], name="billing_ref_payment_5c7e2a_idx"),
            models.Index(fields=["status", "created_at"], name="billing_ref_status_8d1f4b_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="refund_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Refund({self.refund_id or self.id}, {self.status}, {self.amount} {self.currency})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=RefundStatus.PENDING,
        target=RefundStatus.PROCESSED,
    )
    def mark_processed(self, processed_at: datetime) -> None:
        """PENDING -> PROCESSED."""
        self.processed_at = processed_at

    @transition(
        field=status,
        source=RefundStatus.PENDING,
        target=RefundStatus.FAILED,
    )
    def mark_failed(
        self,
        failed_at: datetime,
        error_code: str = "",
        error_description: str = "",
    ) -> None:
        """
        PENDING -> FAILED.

        Used both for gateway rejections at initiation time and for
        ``refund.failed`` webhooks.
        """
        self.failed_at = failed_at
        if error_code:
            self.error_code = error_code
        if error_description:
            self.error_description = error_description

    @property
    def is_terminal(self) -> bool:
        return self.status in RefundStatus.terminal()

    @property
    def counts_against_payment(self) -> bool:
        """Non-FAILED refunds consume the payment's refundable balance."""
        return self.status != RefundStatus.FAILED
