"""
Service catalog: the offerings users can buy.

A Service carries the price charged at checkout and the length of the
entitlement window a confirmed payment grants. Payments and subscriptions
record the service ``code`` they were bought under, so a later price or
duration change never rewrites history.

Usage:
    from billing.models import Service
    from billing.state_machines import DurationType

    service = Service.objects.create(
        code="PREMIUM_ONE",
        display_name="Premium One",
        amount=99900,
        duration=1,
        duration_type=DurationType.MONTHS,
    )

    service.period_end(now)  # end of a window starting now
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from django.core.validators import RegexValidator
from django.db import models

from core.helpers import shift_months
from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from billing.state_machines import DurationType, ServiceStatus

if TYPE_CHECKING:
    from datetime import datetime


SERVICE_CODE_PATTERN = r"^[A-Z0-9_]+$"


class Service(UUIDPrimaryKeyMixin, BaseModel):
    """
    A purchasable offering.

    Fields:
        code: Stable identifier (uppercase letters, digits, underscores)
        display_name/description: Shown to buyers
        amount: Price in smallest currency unit
        currency: ISO 4217 code
        duration/duration_type: Entitlement period, e.g. 1 MONTHS
        features: Ordered list of feature descriptions
        status: ACTIVE services can be ordered
        created_by/updated_by: Admin emails
    """

    code = models.CharField(
        max_length=32,
        unique=True,
        validators=[RegexValidator(SERVICE_CODE_PATTERN)],
        help_text="Service code, e.g. PREMIUM_ONE",
    )

    display_name = models.CharField(
        max_length=100,
        help_text="User-facing name",
    )

    description = models.TextField(
        blank=True,
        default="",
        help_text="User-facing description",
    )

    # ==========================================================================
    # Pricing
    # ==========================================================================

    amount = models.PositiveBigIntegerField(
        help_text="Price in smallest currency unit (paise)",
    )

    currency = models.CharField(
        max_length=3,
        default="INR",
        help_text="ISO 4217 currency code",
    )

    duration = models.PositiveIntegerField(
        help_text="Number of duration_type units in one entitlement window",
    )

    duration_type = models.CharField(
        max_length=10,
        choices=DurationType.choices,
        default=DurationType.MONTHS,
    )

    features = models.JSONField(
        default=list,
        blank=True,
        help_text="Feature descriptions, in display order",
    )

    # ==========================================================================
    # Availability
    # ==========================================================================

    status = models.CharField(
        max_length=10,
        choices=ServiceStatus.choices,
        default=ServiceStatus.ACTIVE,
        db_index=True,
    )

    created_by = models.EmailField(blank=True, default="")
    updated_by = models.EmailField(blank=True, default="")

    class Meta:
        ordering = ["code"]
        verbose_name = "Service"
        verbose_name_plural = "Services"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="service_amount_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(duration__gt=0),
                name="service_duration_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Service({self.code}, {self.amount} {self.currency}, {self.status})"

    @property
    def is_purchasable(self) -> bool:
        return self.status == ServiceStatus.ACTIVE

    def period_end(self, start: datetime) -> datetime:
        """End of an entitlement window of this service that starts at ``start``."""
        if self.duration_type == DurationType.DAYS:
            return start + timedelta(days=self.duration)
        if self.duration_type == DurationType.YEARS:
            return shift_months(start, 12 * self.duration)
        return shift_months(start, self.duration)
