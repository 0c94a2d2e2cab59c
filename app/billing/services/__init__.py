"""
Billing services.

This module provides:
- PaymentService: Creates checkout orders, verifies confirmations and activates subscriptions
- ServiceCatalogService: Cached catalog lookups and admin management of services
- SubscriptionService: Grace period, expiry and cancellation of subscriptions
- RefundService: Refund ledger (initiation, webhook application, summaries)
- ReconciliationEngine: Authenticates and applies refund webhooks
- FinancialService: Read-only revenue and refund rollups

Usage:
    from billing.services import RefundService

    result = RefundService.initiate(
        payment_id="pay_29QQoUBi66xm2f",
        amount=2500,
        initiated_by="admin@example.com",
    )
"""

from billing.services.catalog_service import (
    ServiceAnalytics,
    ServiceCatalogService,
    ServicePage,
)
from billing.services.financial_service import (
    FinancialMetrics,
    FinancialService,
    RefundMetrics,
)
from billing.services.payment_service import PaymentConfirmation, PaymentService
from billing.services.reconciliation_service import (
    ReconciliationEngine,
    ReconciliationOutcome,
    ReconciliationStage,
)
from billing.services.refund_service import (
    PaymentRefundSummary,
    RefundApplication,
    RefundPage,
    RefundService,
    RefundSyncResult,
)
from billing.services.subscription_service import (
    LifecycleEvaluation,
    SubscriptionAnalytics,
    SubscriptionHistory,
    SubscriptionPage,
    SubscriptionService,
    SubscriptionSnapshot,
)

__all__ = [
    "FinancialMetrics",
    "FinancialService",
    "LifecycleEvaluation",
    "PaymentConfirmation",
    "PaymentRefundSummary",
    "PaymentService",
    "ReconciliationEngine",
    "ReconciliationOutcome",
    "ReconciliationStage",
    "RefundApplication",
    "RefundMetrics",
    "RefundPage",
    "RefundService",
    "RefundSyncResult",
    "ServiceAnalytics",
    "ServiceCatalogService",
    "ServicePage",
    "SubscriptionAnalytics",
    "SubscriptionHistory",
    "SubscriptionPage",
    "SubscriptionService",
    "SubscriptionSnapshot",
]
