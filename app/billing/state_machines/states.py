"""
State enums for billing models.

These are Django TextChoices for database storage and admin integration;
the subscription, refund and order status fields are django-fsm FSMFields.

State Machines Overview:

Subscription Status:
    ACTIVE → GRACE_PERIOD → EXPIRED
    ACTIVE/GRACE_PERIOD → CANCELLED

Refund Status:
    PENDING → PROCESSED
    PENDING → FAILED

Order Status:
    CREATED → PAID
"""

from django.db import models


class SubscriptionStatus(models.TextChoices):
    """
    States for the Subscription lifecycle.

    ACTIVE is the only entry state. EXPIRED and CANCELLED are terminal.

    State Flow:
        ACTIVE → GRACE_PERIOD (now > end_date)
        GRACE_PERIOD → EXPIRED (now > grace_period_end)
        ACTIVE → CANCELLED, GRACE_PERIOD → CANCELLED (explicit cancel)
    """

    ACTIVE = "ACTIVE", "Active"
    GRACE_PERIOD = "GRACE_PERIOD", "Grace Period"
    EXPIRED = "EXPIRED", "Expired"
    CANCELLED = "CANCELLED", "Cancelled"

    @classmethod
    def entitled(cls) -> tuple[str, ...]:
        """States in which the user keeps premium access."""
        return (cls.ACTIVE, cls.GRACE_PERIOD)

    @classmethod
    def terminal(cls) -> tuple[str, ...]:
        return (cls.EXPIRED, cls.CANCELLED)


class RefundStatus(models.TextChoices):
    """
    States for the Refund lifecycle.

    A refund changes state exactly once per refund_id. PROCESSED and FAILED
    are terminal; webhooks that would move a terminal refund are rejected.
    """

    PENDING = "PENDING", "Pending"
    PROCESSED = "PROCESSED", "Processed"
    FAILED = "FAILED", "Failed"

    @classmethod
    def terminal(cls) -> tuple[str, ...]:
        return (cls.PROCESSED, cls.FAILED)

    @classmethod
    def from_gateway(cls, value: str | None) -> str | None:
        """Map the gateway's lowercase entity status; unknown values give None."""
        if not value:
            return None
        value = value.strip().upper()
        if value == "CREATED":
            return cls.PENDING
        if value in cls.values:
            return cls(value)
        return None


class RefundSpeed(models.TextChoices):
    """
    Refund speed requested from or reported by the gateway.

    The gateway reports the processed speed as "instant" or "normal";
    "instant" is stored as OPTIMUM.
    """

    OPTIMUM = "OPTIMUM", "Optimum"
    NORMAL = "NORMAL", "Normal"

    @classmethod
    def from_gateway(cls, value: str | None) -> str | None:
        if not value:
            return None
        value = value.strip().lower()
        if value in ("optimum", "instant"):
            return cls.OPTIMUM
        if value == "normal":
            return cls.NORMAL
        return None

    def to_gateway(self) -> str:
        return "optimum" if self == RefundSpeed.OPTIMUM else "normal"


class PaymentStatus(models.TextChoices):
    """Payment records are terminal once written."""

    VERIFIED = "verified", "Verified"
    FAILED = "failed", "Failed"


class ServiceStatus(models.TextChoices):
    """
    Catalog availability of a purchasable service.

    Only ACTIVE services can be ordered. ARCHIVED is refused while the
    service still backs entitled subscriptions.
    """

    ACTIVE = "ACTIVE", "Active"
    INACTIVE = "INACTIVE", "Inactive"
    ARCHIVED = "ARCHIVED", "Archived"


class DurationType(models.TextChoices):
    """Unit of a service's entitlement period."""

    DAYS = "DAYS", "Days"
    MONTHS = "MONTHS", "Months"
    YEARS = "YEARS", "Years"


class OrderStatus(models.TextChoices):
    """
    Server-created checkout orders.

    State Flow:
        CREATED -> PAID (checkout confirmation verified)
    """

    CREATED = "CREATED", "Created"
    PAID = "PAID", "Paid"


class NoticeType(models.TextChoices):
    """Subscription expiry notices, each sent at most once per subscription."""

    EXPIRY_WARNING_3_DAYS = "EXPIRY_WARNING_3_DAYS", "Expires in 3 days"
    EXPIRY_WARNING_1_DAY = "EXPIRY_WARNING_1_DAY", "Expires in 1 day"
    EXPIRED = "EXPIRED", "Expired"
