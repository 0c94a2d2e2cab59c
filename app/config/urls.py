"""
URL configuration for the billing service.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/                  - JWT endpoints (simplejwt)
        token/                     - Obtain access/refresh pair
        token/refresh/             - Refresh access token
    /api/v1/billing/               - Billing endpoints
        payments/verify/           - Confirm a checkout payment
        payments/{id}/refunds/     - Refund summary for a payment
        payments/{id}/refunds/sync/ - Pull refunds from the gateway
        subscriptions/             - Admin subscription list
        subscriptions/analytics/   - Admin subscription analytics
        subscriptions/cancel/      - Admin cancellation by email
        subscriptions/me/          - Current subscription
        subscriptions/me/history/  - Subscription history
        subscriptions/me/cancel/   - Cancel own subscription
        refunds/                   - Refund list/initiate
        refunds/{id}/              - Refund detail
        metrics/financial/         - Revenue metrics
        metrics/refunds/           - Refund metrics
        webhooks/razorpay/         - Razorpay webhook endpoint (POST)
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("auth/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("billing/", include("billing.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    path("admin/", admin.site.urls),
    path("health/", health_check, name="health_check"),
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Billing Admin"
admin.site.site_title = "Billing Admin"
admin.site.index_title = "Payments, refunds and subscriptions"
