"""
Payment model for gateway-confirmed purchases.

A Payment is written once, when the client returns the gateway's
``order_id``/``payment_id``/``signature`` triple and the signature checks
out. It is terminal: nothing in the engine moves it afterwards, apart from
administrative annotation in ``notes``.

Usage:
    from billing.models import Payment

    payment = Payment.objects.get(payment_id="pay_29QQoUBi66xm2f")
    payment.refunds.all()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from billing.state_machines import PaymentStatus


class Payment(UUIDPrimaryKeyMixin, BaseModel):
    """
    A verified gateway payment.

    Fields:
        order_id: Gateway order ID (order_xxx)
        payment_id: Gateway payment ID (pay_xxx), unique
        signature: Hex HMAC returned by the checkout
        amount: Amount in smallest currency unit (paise)
        currency: ISO 4217 code
        status: verified / failed
        user: Paying user (nullable so history survives user deletion)
        user_email: Denormalized owner email
        service_type: Catalog service code purchased
        subscription_start/end: Entitlement window granted by this payment
        verified_at: When the signature was verified
        request_ip/user_agent: Client context captured at verification
        receipt: Merchant receipt reference
        notes: Administrative annotations

    Note:
        Refunds against a payment live in billing.Refund; the sum of
        non-FAILED refund amounts must never exceed ``amount``.
    """

    # ==========================================================================
    # Gateway Identifiers
    # ==========================================================================

    order_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Gateway order ID (order_xxx)",
    )

    payment_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Gateway payment ID (pay_xxx)",
    )

    signature = models.CharField(
        max_length=255,
        help_text="Checkout signature (hex HMAC-SHA256 of order_id|payment_id)",
    )

    # ==========================================================================
    # Amount & Status
    # ==========================================================================

    amount = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Amount in smallest currency unit (e.g., paise)",
    )

    currency = models.CharField(
        max_length=3,
        default="INR",
        help_text="ISO 4217 currency code",
    )

    status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.VERIFIED,
        db_index=True,
        help_text="Verification outcome",
    )

    # ==========================================================================
    # Ownership
    # ==========================================================================

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
        help_text="User who made the payment",
    )

    user_email = models.EmailField(
        db_index=True,
        help_text="Owner email, denormalized from the user",
    )

    # ==========================================================================
    # Entitlement
    # ==========================================================================

    service_type = models.CharField(
        max_length=32,
        help_text="Catalog service code purchased by this payment",
    )

    subscription_start = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Start of the entitlement window granted",
    )

    subscription_end = models.DateTimeField(
        null=True,
        blank=True,
        help_text="End of the entitlement window granted",
    )

    # ==========================================================================
    # Audit
    # ==========================================================================

    verified_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="When the checkout signature was verified",
    )

    receipt = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Merchant receipt reference",
    )

    request_ip = models.GenericIPAddressField(
        null=True,
        blank=True,
        help_text="Client IP at verification",
    )

    user_agent = models.TextField(
        blank=True,
        default="",
        help_text="Client user agent at verification",
    )

    notes = models.JSONField(
        default=dict,
        blank=True,
        help_text="Administrative annotations",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["status", "created_at"], name="billing_pay_status_4a8f1c_idx"),
            models.Index(fields=["user_email", "created_at"], name="billing_pay_user_em_9b2d3e_idx"),
        ]

    def __str__(self) -> str:
        return f"Payment({self.payment_id}, {self.status}, {self.amount} {self.currency})"

    @property
    def is_verified(self) -> bool:
        return self.status == PaymentStatus.VERIFIED
