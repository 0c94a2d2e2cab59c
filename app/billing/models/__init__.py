"""
Billing domain models.

- Service: Catalog offering with price and entitlement period
- PaymentOrder: Server-created checkout order (CREATED -> PAID)
- Payment: Gateway-confirmed purchase, terminal once written
- Refund: Money returned against a Payment (PENDING -> PROCESSED/FAILED)
- Subscription: Time-boxed entitlement in a user's history
- SubscriptionNotice: Expiry notices already sent per subscription
"""

from billing.models.order import PaymentOrder
from billing.models.payment import Payment
from billing.models.refund import Refund
from billing.models.service import Service
from billing.models.subscription import Subscription, SubscriptionNotice

__all__ = [
    "Payment",
    "PaymentOrder",
    "Refund",
    "Service",
    "Subscription",
    "SubscriptionNotice",
]
