"""
PaymentOrder: a checkout order created through the gateway by this server.

The client asks for an order for a catalog service; the server creates the
gateway order for the service's price and stores it here. When the
checkout confirmation arrives, the amount, currency and service are read
from this row, never from the client.

Usage:
    from billing.models import PaymentOrder

    order = PaymentOrder.objects.get(order_id="order_EKwxwAgItmmXdp")
    order.mark_paid(now)  # CREATED -> PAID
    order.save()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.db import models

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from billing.state_machines import OrderStatus

if TYPE_CHECKING:
    from datetime import datetime


class PaymentOrder(UUIDPrimaryKeyMixin, BaseModel):
    """
    Gateway order for one purchase of a catalog service.

    State Flow:
        CREATED -> PAID

    Fields:
        order_id: Gateway order ID (order_xxx), unique
        user: Buyer; only this user may confirm the order
        service: Catalog service ordered
        amount/currency: Snapshot of the service price at order time
        receipt: Merchant receipt reference sent to the gateway
        gateway_status: Order status reported by the gateway at creation
        paid_at: When the checkout confirmation was verified
    """

    order_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Gateway order ID (order_xxx)",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="payment_orders",
        help_text="Buyer",
    )

    service = models.ForeignKey(
        "billing.Service",
        on_delete=models.PROTECT,
        related_name="orders",
        help_text="Catalog service ordered",
    )

    amount = models.PositiveBigIntegerField(
        help_text="Amount in smallest currency unit",
    )

    currency = models.CharField(
        max_length=3,
        help_text="ISO 4217 currency code",
    )

    receipt = models.CharField(
        max_length=40,
        help_text="Merchant receipt reference",
    )

    status = FSMField(
        default=OrderStatus.CREATED,
        choices=OrderStatus.choices,
        db_index=True,
    )

    gateway_status = models.CharField(
        max_length=32,
        blank=True,
        default="",
    )

    paid_at = models.DateTimeField(
        null=True,
        blank=True,
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment Order"
        verbose_name_plural = "Payment Orders"

    def __str__(self) -> str:
        return f"PaymentOrder({self.order_id}, {self.amount} {self.currency}, {self.status})"

    @transition(field=status, source=OrderStatus.CREATED, target=OrderStatus.PAID)
    def mark_paid(self, now: datetime) -> None:
        self.paid_at = now
