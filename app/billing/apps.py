"""
Billing app configuration.

This app owns the payment/refund reconciliation and subscription lifecycle
engine:
- Payment confirmation (signature-verified, terminal records)
- Refund ledger with idempotent webhook application
- Subscription state machine and periodic sweeps
- Financial rollups for the admin dashboard
"""

from django.apps import AppConfig


class BillingConfig(AppConfig):
    """Configuration for the billing application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "billing"
    verbose_name = "Billing"
