"""
Webhook endpoint for refund events from Razorpay.

Deliveries are verified against the raw body, parsed and applied
synchronously by billing.services.ReconciliationEngine.

Usage:
    # In urls.py
    from billing.webhooks.views import razorpay_webhook

    urlpatterns = [
        path("webhooks/razorpay/", razorpay_webhook, name="razorpay_webhook"),
    ]
"""

from billing.webhooks.views import razorpay_webhook

__all__ = [
    "razorpay_webhook",
]
