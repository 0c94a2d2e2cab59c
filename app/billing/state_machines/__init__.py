"""
State machine enums for billing models.
"""

from billing.state_machines.states import (
    DurationType,
    NoticeType,
    OrderStatus,
    PaymentStatus,
    RefundSpeed,
    RefundStatus,
    ServiceStatus,
    SubscriptionStatus,
)

__all__ = [
    "DurationType",
    "NoticeType",
    "OrderStatus",
    "PaymentStatus",
    "RefundSpeed",
    "RefundStatus",
    "ServiceStatus",
    "SubscriptionStatus",
]
