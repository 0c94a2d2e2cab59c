"""
URL configuration for the billing app.

All routes are prefixed with /api/v1/billing/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("billing/", include("billing.urls")),
    ]
"""

from django.urls import path

from billing import views
from billing.webhooks.views import razorpay_webhook

app_name = "billing"

urlpatterns = [
    # Payments
    path("payments/orders/", views.CreateOrderView.as_view(), name="create_order"),
    path("payments/verify/", views.VerifyPaymentView.as_view(), name="verify_payment"),
    path(
        "payments/<str:payment_id>/refunds/",
        views.PaymentRefundSummaryView.as_view(),
        name="payment_refunds",
    ),
    path(
        "payments/<str:payment_id>/refunds/sync/",
        views.PaymentRefundSyncView.as_view(),
        name="payment_refunds_sync",
    ),
    # Service catalog
    path("catalog/", views.ServiceCatalogView.as_view(), name="service_catalog"),
    path("services/", views.ServiceListCreateView.as_view(), name="service_list"),
    path("services/<str:code>/", views.ServiceDetailView.as_view(), name="service_detail"),
    path(
        "services/<str:code>/status/",
        views.ServiceStatusView.as_view(),
        name="service_status",
    ),
    path(
        "services/<str:code>/clone/",
        views.ServiceCloneView.as_view(),
        name="service_clone",
    ),
    path(
        "services/<str:code>/analytics/",
        views.ServiceAnalyticsView.as_view(),
        name="service_analytics",
    ),
    # Subscriptions
    path("subscriptions/", views.SubscriptionListView.as_view(), name="subscription_list"),
    path(
        "subscriptions/analytics/",
        views.SubscriptionAnalyticsView.as_view(),
        name="subscription_analytics",
    ),
    path(
        "subscriptions/cancel/",
        views.AdminCancelSubscriptionView.as_view(),
        name="admin_cancel_subscription",
    ),
    path("subscriptions/me/", views.MySubscriptionView.as_view(), name="my_subscription"),
    path(
        "subscriptions/me/history/",
        views.MySubscriptionHistoryView.as_view(),
        name="my_subscription_history",
    ),
    path(
        "subscriptions/me/cancel/",
        views.CancelMySubscriptionView.as_view(),
        name="cancel_my_subscription",
    ),
    # Refunds
    path("refunds/", views.RefundListCreateView.as_view(), name="refund_list"),
    path("refunds/<str:refund_id>/", views.RefundDetailView.as_view(), name="refund_detail"),
    # Metrics
    path("metrics/financial/", views.FinancialMetricsView.as_view(), name="financial_metrics"),
    path("metrics/refunds/", views.RefundMetricsView.as_view(), name="refund_metrics"),
    # Webhook endpoints
    path("webhooks/razorpay/", razorpay_webhook, name="razorpay_webhook"),
]
