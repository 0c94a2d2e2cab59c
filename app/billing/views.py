"""
API views for payments, subscriptions, refunds and financial reports.

Provides:
- CreateOrderView: Start a checkout for a catalog service
- VerifyPaymentView: Confirm a checkout payment and activate the subscription
- ServiceCatalogView: Purchasable services
- MySubscriptionView / MySubscriptionHistoryView / CancelMySubscriptionView
- Admin: subscription listing, analytics and cancellation
- Admin: refund initiation, listing, detail, per-payment summary and sync
- Admin: financial and refund metrics
- Admin: service catalog management and per-service analytics

Every response body is the ServiceResult envelope:
    {"success": true, "data": {...}}
    {"success": false, "error": "...", "error_code": "..."}

The webhook endpoint lives in billing.webhooks.views.
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.helpers import get_client_ip
from core.services import ServiceResult

from billing.exceptions import ErrorCode
from billing.serializers import (
    AdminCancelSubscriptionSerializer,
    CloneServiceSerializer,
    CreateOrderSerializer,
    CreateServiceSerializer,
    FinancialMetricsSerializer,
    InitiateRefundSerializer,
    PaymentConfirmationSerializer,
    PaymentOrderSerializer,
    PaymentRefundSummarySerializer,
    RefundListQuerySerializer,
    RefundMetricsSerializer,
    RefundSerializer,
    RefundSyncResultSerializer,
    ServiceAnalyticsSerializer,
    ServiceListQuerySerializer,
    ServiceSerializer,
    ServiceStatusSerializer,
    ServiceWriteSerializer,
    SubscriptionAnalyticsSerializer,
    SubscriptionHistorySerializer,
    SubscriptionListQuerySerializer,
    SubscriptionSerializer,
    SubscriptionSnapshotSerializer,
    VerifyPaymentSerializer,
)
from billing.services import (
    FinancialService,
    PaymentService,
    RefundService,
    ServiceCatalogService,
    SubscriptionService,
)


# Error code -> HTTP status for failed service results
ERROR_STATUS: dict[str, int] = {
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.AUTHENTICATION_ERROR: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.NO_SUBSCRIPTION: status.HTTP_404_NOT_FOUND,
    ErrorCode.BUSINESS_RULE_VIOLATION: status.HTTP_409_CONFLICT,
    ErrorCode.NO_ACTIVE_SUBSCRIPTION: status.HTTP_409_CONFLICT,
    ErrorCode.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.INTEGRATION_FAILURE: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.TRANSIENT_STORE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.CONFIGURATION_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def error_response(result: ServiceResult) -> Response:
    return Response(
        result.to_response(),
        status=ERROR_STATUS.get(result.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR),
    )


def validation_error_response(errors: dict) -> Response:
    return Response(
        {
            "success": False,
            "error": "Invalid request",
            "error_code": ErrorCode.VALIDATION_ERROR,
            "errors": errors,
        },
        status=status.HTTP_400_BAD_REQUEST,
    )


def data_response(data, status_code: int = status.HTTP_200_OK) -> Response:
    return Response({"success": True, "data": data}, status=status_code)


# =============================================================================
# Payments
# =============================================================================


class CreateOrderView(APIView):
    """
    Start a checkout.

    POST /api/v1/billing/payments/orders/

    Request body:
        {"service_code": "PREMIUM_ONE", "receipt": "optional", "notes": {}}

    Response:
        201 Created: Gateway order priced from the catalog, with the
            public key id the client opens the checkout with
        404: Unknown service
        409: Service is not available for purchase
        502: Gateway refused the order
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_payment_order",
        summary="Create checkout order",
        request=CreateOrderSerializer,
        responses={
            201: PaymentOrderSerializer,
            404: OpenApiResponse(description="Service not found"),
            409: OpenApiResponse(description="Service not available"),
            502: OpenApiResponse(description="Gateway refused the order"),
        },
        tags=["Billing - Payments"],
    )
    def post(self, request):
        serializer = CreateOrderSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        result = PaymentService.create_order(user=request.user, **serializer.validated_data)
        if not result.success:
            return error_response(result)
        return data_response(PaymentOrderSerializer(result.data).data, status.HTTP_201_CREATED)


class VerifyPaymentView(APIView):
    """
    Confirm a checkout payment.

    POST /api/v1/billing/payments/verify/

    Request body:
        {
            "order_id": "order_xxx",
            "payment_id": "pay_xxx",
            "signature": "<hex hmac>"
        }

    The amount and service are read from the order created by
    CreateOrderView.

    Response:
        201 Created: Payment stored and subscription activated
        200 OK: Payment was already stored (replay)
        400/401: Invalid input or signature
        404: Order not found for this user
        409: Order already paid
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="verify_payment",
        summary="Verify checkout payment",
        request=VerifyPaymentSerializer,
        responses={
            201: PaymentConfirmationSerializer,
            200: PaymentConfirmationSerializer,
            400: OpenApiResponse(description="Invalid request"),
            401: OpenApiResponse(description="Invalid payment signature"),
            404: OpenApiResponse(description="Order not found"),
            409: OpenApiResponse(description="Order already paid"),
        },
        tags=["Billing - Payments"],
    )
    def post(self, request):
        serializer = VerifyPaymentSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        result = PaymentService.verify_and_store(
            user=request.user,
            request_ip=get_client_ip(request) or None,
            user_agent=request.META.get("HTTP_USER_AGENT", ""),
            **serializer.validated_data,
        )
        if not result.success:
            return error_response(result)

        return data_response(
            PaymentConfirmationSerializer(result.data).data,
            status.HTTP_201_CREATED if result.data.created else status.HTTP_200_OK,
        )


# =============================================================================
# Service Catalog
# =============================================================================


class ServiceCatalogView(APIView):
    """GET /api/v1/billing/catalog/ - services that can be ordered."""

    permission_classes = [AllowAny]

    @extend_schema(
        operation_id="list_purchasable_services",
        summary="Purchasable services",
        responses={200: ServiceSerializer(many=True)},
        tags=["Billing - Payments"],
    )
    def get(self, request):
        services = ServiceCatalogService.list_purchasable()
        return data_response({"services": ServiceSerializer(services, many=True).data})


class ServiceListCreateView(APIView):
    """
    List or create catalog services.

    GET /api/v1/billing/services/?status=ACTIVE&search=premium&page=1
    POST /api/v1/billing/services/
        {"code": "PREMIUM_PLUS", "display_name": "...", "amount": 999900,
         "duration": 1, "duration_type": "YEARS"}
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="list_services",
        summary="List services",
        parameters=[ServiceListQuerySerializer],
        responses={200: ServiceSerializer(many=True)},
        tags=["Billing - Catalog"],
    )
    def get(self, request):
        query = ServiceListQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return validation_error_response(query.errors)

        params = query.validated_data
        result = ServiceCatalogService.list_services(
            status=params.get("status"),
            search=params["search"],
            page=params["page"],
            page_size=params["page_size"],
        )
        if not result.success:
            return error_response(result)

        return data_response(
            {
                "services": ServiceSerializer(result.data.items, many=True).data,
                "pagination": result.data.pagination,
            }
        )

    @extend_schema(
        operation_id="create_service",
        summary="Create service",
        request=CreateServiceSerializer,
        responses={
            201: ServiceSerializer,
            409: OpenApiResponse(description="Service code already exists"),
        },
        tags=["Billing - Catalog"],
    )
    def post(self, request):
        serializer = CreateServiceSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        result = ServiceCatalogService.create_service(
            admin_email=request.user.email, **serializer.validated_data
        )
        if not result.success:
            return error_response(result)
        return data_response(ServiceSerializer(result.data).data, status.HTTP_201_CREATED)


class ServiceDetailView(APIView):
    """GET or PATCH /api/v1/billing/services/<code>/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="get_service",
        summary="Service detail",
        responses={200: ServiceSerializer, 404: OpenApiResponse(description="Not found")},
        tags=["Billing - Catalog"],
    )
    def get(self, request, code):
        result = ServiceCatalogService.get_service(code)
        if not result.success:
            return error_response(result)
        return data_response(ServiceSerializer(result.data).data)

    @extend_schema(
        operation_id="update_service",
        summary="Update service",
        request=ServiceWriteSerializer,
        responses={200: ServiceSerializer, 404: OpenApiResponse(description="Not found")},
        tags=["Billing - Catalog"],
    )
    def patch(self, request, code):
        serializer = ServiceWriteSerializer(data=request.data, partial=True)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        result = ServiceCatalogService.update_service(
            code, admin_email=request.user.email, **serializer.validated_data
        )
        if not result.success:
            return error_response(result)
        return data_response(ServiceSerializer(result.data).data)


class ServiceStatusView(APIView):
    """POST /api/v1/billing/services/<code>/status/ {"status": "INACTIVE"}"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="change_service_status",
        summary="Change service status",
        request=ServiceStatusSerializer,
        responses={
            200: ServiceSerializer,
            409: OpenApiResponse(description="Service has active subscriptions"),
        },
        tags=["Billing - Catalog"],
    )
    def post(self, request, code):
        serializer = ServiceStatusSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        result = ServiceCatalogService.change_status(
            code, serializer.validated_data["status"], admin_email=request.user.email
        )
        if not result.success:
            return error_response(result)
        return data_response(ServiceSerializer(result.data).data)


class ServiceCloneView(APIView):
    """POST /api/v1/billing/services/<code>/clone/ {"code": "NEW_CODE"}"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="clone_service",
        summary="Clone service",
        request=CloneServiceSerializer,
        responses={
            201: ServiceSerializer,
            404: OpenApiResponse(description="Source service not found"),
            409: OpenApiResponse(description="Service code already exists"),
        },
        tags=["Billing - Catalog"],
    )
    def post(self, request, code):
        serializer = CloneServiceSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        result = ServiceCatalogService.clone_service(
            code, serializer.validated_data["code"], admin_email=request.user.email
        )
        if not result.success:
            return error_response(result)
        return data_response(ServiceSerializer(result.data).data, status.HTTP_201_CREATED)


class ServiceAnalyticsView(APIView):
    """GET /api/v1/billing/services/<code>/analytics/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="service_analytics",
        summary="Service analytics",
        responses={200: ServiceAnalyticsSerializer},
        tags=["Billing - Catalog"],
    )
    def get(self, request, code):
        result = ServiceCatalogService.get_service_analytics(code)
        if not result.success:
            return error_response(result)
        return data_response(ServiceAnalyticsSerializer(result.data).data)


# =============================================================================
# Subscriptions (current user)
# =============================================================================


class MySubscriptionView(APIView):
    """GET /api/v1/billing/subscriptions/me/ - latest subscription."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_my_subscription",
        summary="Current subscription status",
        responses={
            200: SubscriptionSnapshotSerializer,
            404: OpenApiResponse(description="No subscription"),
        },
        tags=["Billing - Subscriptions"],
    )
    def get(self, request):
        result = SubscriptionService.get_subscription_status(request.user)
        if not result.success:
            return error_response(result)
        return data_response(SubscriptionSnapshotSerializer(result.data).data)


class MySubscriptionHistoryView(APIView):
    """GET /api/v1/billing/subscriptions/me/history/"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_my_subscription_history",
        summary="Subscription history",
        responses={200: SubscriptionHistorySerializer},
        tags=["Billing - Subscriptions"],
    )
    def get(self, request):
        result = SubscriptionService.get_subscription_history(request.user)
        if not result.success:
            return error_response(result)
        return data_response(SubscriptionHistorySerializer(result.data).data)


class CancelMySubscriptionView(APIView):
    """
    Cancel the current user's subscription.

    POST /api/v1/billing/subscriptions/me/cancel/

    Response:
        200 OK: Cancelled subscription
        409 Conflict: No active subscription to cancel
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="cancel_my_subscription",
        summary="Cancel subscription",
        request=None,
        responses={
            200: SubscriptionSerializer,
            409: OpenApiResponse(description="No active subscription"),
        },
        tags=["Billing - Subscriptions"],
    )
    def post(self, request):
        result = SubscriptionService.cancel_subscription(request.user)
        if not result.success:
            return error_response(result)
        return data_response(SubscriptionSerializer(result.data).data)


# =============================================================================
# Subscriptions (admin)
# =============================================================================


class SubscriptionListView(APIView):
    """GET /api/v1/billing/subscriptions/?status=ACTIVE&page=1&page_size=20"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="list_subscriptions",
        summary="List subscriptions",
        parameters=[SubscriptionListQuerySerializer],
        responses={200: SubscriptionSerializer(many=True)},
        tags=["Billing - Admin"],
    )
    def get(self, request):
        query = SubscriptionListQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return validation_error_response(query.errors)

        result = SubscriptionService.list_subscriptions(
            status=query.validated_data.get("status"),
            page=query.validated_data["page"],
            page_size=query.validated_data["page_size"],
        )
        if not result.success:
            return error_response(result)

        return data_response(
            {
                "subscriptions": SubscriptionSerializer(result.data.items, many=True).data,
                "pagination": result.data.pagination,
            }
        )


class SubscriptionAnalyticsView(APIView):
    """GET /api/v1/billing/subscriptions/analytics/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="subscription_analytics",
        summary="Subscription analytics",
        responses={200: SubscriptionAnalyticsSerializer},
        tags=["Billing - Admin"],
    )
    def get(self, request):
        result = SubscriptionService.get_subscription_analytics()
        if not result.success:
            return error_response(result)
        return data_response(SubscriptionAnalyticsSerializer(result.data).data)


class AdminCancelSubscriptionView(APIView):
    """POST /api/v1/billing/subscriptions/cancel/ {"email": "user@example.com"}"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="admin_cancel_subscription",
        summary="Cancel a user's subscription",
        request=AdminCancelSubscriptionSerializer,
        responses={
            200: SubscriptionSerializer,
            404: OpenApiResponse(description="User not found"),
            409: OpenApiResponse(description="No active subscription"),
        },
        tags=["Billing - Admin"],
    )
    def post(self, request):
        serializer = AdminCancelSubscriptionSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        result = SubscriptionService.cancel_user_subscription(
            email=serializer.validated_data["email"],
            admin_email=request.user.email,
        )
        if not result.success:
            return error_response(result)
        return data_response(SubscriptionSerializer(result.data).data)


# =============================================================================
# Refunds (admin)
# =============================================================================


class RefundListCreateView(APIView):
    """
    Initiate or list refunds.

    POST /api/v1/billing/refunds/
        {"payment_id": "pay_xxx", "amount": 5000, "speed": "NORMAL", "reason": "..."}

    GET /api/v1/billing/refunds/?status=PENDING&start=...&end=...&page=1
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="initiate_refund",
        summary="Initiate refund",
        request=InitiateRefundSerializer,
        responses={
            201: RefundSerializer,
            404: OpenApiResponse(description="Payment not found"),
            409: OpenApiResponse(description="Amount exceeds remaining refundable amount"),
            502: OpenApiResponse(description="Gateway refused the refund"),
        },
        tags=["Billing - Refunds"],
    )
    def post(self, request):
        serializer = InitiateRefundSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        data = serializer.validated_data
        result = RefundService.initiate(
            payment_id=data["payment_id"],
            amount=data.get("amount"),
            speed=data["speed"],
            initiated_by=request.user.email,
            reason=data["reason"],
            notes=data["notes"],
            receipt=data.get("receipt") or None,
        )
        if not result.success:
            return error_response(result)
        return data_response(RefundSerializer(result.data).data, status.HTTP_201_CREATED)

    @extend_schema(
        operation_id="list_refunds",
        summary="List refunds",
        parameters=[RefundListQuerySerializer],
        responses={200: RefundSerializer(many=True)},
        tags=["Billing - Refunds"],
    )
    def get(self, request):
        query = RefundListQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return validation_error_response(query.errors)

        params = query.validated_data
        result = RefundService.list_refunds(
            status=params.get("status"),
            start=params.get("start"),
            end=params.get("end"),
            page=params["page"],
            page_size=params["page_size"],
        )
        if not result.success:
            return error_response(result)

        return data_response(
            {
                "refunds": RefundSerializer(result.data.items, many=True).data,
                "pagination": result.data.pagination,
                "total_amount": result.data.total_amount,
            }
        )


class RefundDetailView(APIView):
    """GET /api/v1/billing/refunds/<refund_id>/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="get_refund",
        summary="Refund detail",
        responses={200: RefundSerializer, 404: OpenApiResponse(description="Not found")},
        tags=["Billing - Refunds"],
    )
    def get(self, request, refund_id):
        result = RefundService.get_refund(refund_id)
        if not result.success:
            return error_response(result)
        return data_response(RefundSerializer(result.data).data)


class PaymentRefundSummaryView(APIView):
    """GET /api/v1/billing/payments/<payment_id>/refunds/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="payment_refund_summary",
        summary="Refunds for a payment",
        responses={200: PaymentRefundSummarySerializer},
        tags=["Billing - Refunds"],
    )
    def get(self, request, payment_id):
        result = RefundService.summary_for_payment(payment_id)
        if not result.success:
            return error_response(result)
        return data_response(PaymentRefundSummarySerializer(result.data).data)


class PaymentRefundSyncView(APIView):
    """POST /api/v1/billing/payments/<payment_id>/refunds/sync/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="sync_payment_refunds",
        summary="Sync refunds from the gateway",
        request=None,
        responses={
            200: RefundSyncResultSerializer,
            502: OpenApiResponse(description="Gateway unavailable"),
        },
        tags=["Billing - Refunds"],
    )
    def post(self, request, payment_id):
        result = RefundService.sync_from_gateway(payment_id)
        if not result.success:
            return error_response(result)
        return data_response(RefundSyncResultSerializer(result.data).data)


# =============================================================================
# Metrics (admin)
# =============================================================================


class FinancialMetricsView(APIView):
    """GET /api/v1/billing/metrics/financial/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="financial_metrics",
        summary="Revenue and refund metrics",
        responses={200: FinancialMetricsSerializer},
        tags=["Billing - Admin"],
    )
    def get(self, request):
        result = FinancialService.get_financial_metrics()
        if not result.success:
            return error_response(result)
        return data_response(FinancialMetricsSerializer(result.data).data)


class RefundMetricsView(APIView):
    """GET /api/v1/billing/metrics/refunds/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="refund_metrics",
        summary="Refund metrics",
        responses={200: RefundMetricsSerializer},
        tags=["Billing - Admin"],
    )
    def get(self, request):
        result = FinancialService.get_refund_metrics()
        if not result.success:
            return error_response(result)
        return data_response(RefundMetricsSerializer(result.data).data)
