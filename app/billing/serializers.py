"""
Serializers for billing API requests and responses.

Request serializers validate input before it reaches a service.
Response serializers render models and service result dataclasses; money
is always an integer in the smallest currency unit.
"""

from __future__ import annotations

from django.conf import settings
from rest_framework import serializers

from billing.models import Payment, PaymentOrder, Refund, Service, Subscription
from billing.services.catalog_service import MAX_DESCRIPTION_LENGTH, MAX_FEATURE_LENGTH
from billing.state_machines import (
    DurationType,
    RefundSpeed,
    RefundStatus,
    ServiceStatus,
    SubscriptionStatus,
)


# =============================================================================
# Requests
# =============================================================================


class CreateOrderSerializer(serializers.Serializer):
    """Checkout start: the client names a service, the server prices it."""

    service_code = serializers.CharField(max_length=32, help_text="Catalog service code")
    receipt = serializers.CharField(max_length=40, required=False, allow_blank=True, default="")
    notes = serializers.DictField(
        child=serializers.CharField(max_length=256), required=False, default=dict
    )


class VerifyPaymentSerializer(serializers.Serializer):
    """
    Checkout confirmation sent by the client after payment.

    Amount, currency and service are taken from the stored order.
    """

    order_id = serializers.CharField(max_length=255, help_text="Gateway order ID")
    payment_id = serializers.CharField(max_length=255, help_text="Gateway payment ID")
    signature = serializers.CharField(max_length=255, help_text="Checkout signature")


class ServiceWriteSerializer(serializers.Serializer):
    display_name = serializers.CharField(max_length=100)
    description = serializers.CharField(
        max_length=MAX_DESCRIPTION_LENGTH, required=False, allow_blank=True
    )
    amount = serializers.IntegerField(min_value=1, help_text="Price in smallest currency unit")
    currency = serializers.CharField(min_length=3, max_length=3, required=False)
    duration = serializers.IntegerField(min_value=1)
    duration_type = serializers.ChoiceField(choices=DurationType.choices, required=False)
    features = serializers.ListField(
        child=serializers.CharField(max_length=MAX_FEATURE_LENGTH), required=False
    )


class CreateServiceSerializer(ServiceWriteSerializer):
    code = serializers.CharField(max_length=32)


class ServiceStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=ServiceStatus.choices)


class CloneServiceSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=32, help_text="Code of the new service")


class InitiateRefundSerializer(serializers.Serializer):
    payment_id = serializers.CharField(max_length=255)
    amount = serializers.IntegerField(
        min_value=1,
        required=False,
        allow_null=True,
        help_text="Amount in smallest currency unit; omit to refund the remainder",
    )
    speed = serializers.ChoiceField(choices=RefundSpeed.choices, default=RefundSpeed.NORMAL)
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    receipt = serializers.CharField(max_length=255, required=False, allow_blank=True)


class AdminCancelSubscriptionSerializer(serializers.Serializer):
    email = serializers.EmailField()


class PageQuerySerializer(serializers.Serializer):
    page = serializers.IntegerField(min_value=1, default=1)
    page_size = serializers.IntegerField(min_value=1, max_value=100, default=20)


class SubscriptionListQuerySerializer(PageQuerySerializer):
    status = serializers.ChoiceField(choices=SubscriptionStatus.choices, required=False)


class ServiceListQuerySerializer(PageQuerySerializer):
    status = serializers.ChoiceField(choices=ServiceStatus.choices, required=False)
    search = serializers.CharField(required=False, allow_blank=True, default="")


class RefundListQuerySerializer(PageQuerySerializer):
    status = serializers.ChoiceField(choices=RefundStatus.choices, required=False)
    start = serializers.DateTimeField(required=False)
    end = serializers.DateTimeField(required=False)


# =============================================================================
# Models
# =============================================================================


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = [
            "id",
            "order_id",
            "payment_id",
            "amount",
            "currency",
            "status",
            "user_email",
            "service_type",
            "subscription_start",
            "subscription_end",
            "verified_at",
            "receipt",
            "created_at",
        ]
        read_only_fields = fields


class ServiceSerializer(serializers.ModelSerializer):
    class Meta:
        model = Service
        fields = [
            "id",
            "code",
            "display_name",
            "description",
            "amount",
            "currency",
            "duration",
            "duration_type",
            "features",
            "status",
            "created_by",
            "updated_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class PaymentOrderSerializer(serializers.ModelSerializer):
    """Order handed to the client to open the gateway checkout."""

    service_code = serializers.CharField(source="service.code", read_only=True)
    key_id = serializers.SerializerMethodField()

    class Meta:
        model = PaymentOrder
        fields = [
            "order_id",
            "service_code",
            "amount",
            "currency",
            "receipt",
            "status",
            "key_id",
            "created_at",
        ]
        read_only_fields = fields

    def get_key_id(self, obj) -> str:
        return settings.RAZORPAY_KEY_ID


class RefundSerializer(serializers.ModelSerializer):
    payment_id = serializers.CharField(source="payment.payment_id", read_only=True)

    class Meta:
        model = Refund
        fields = [
            "id",
            "refund_id",
            "payment_id",
            "order_id",
            "amount",
            "currency",
            "status",
            "speed_requested",
            "speed_processed",
            "user_email",
            "processed_by",
            "reason",
            "notes",
            "receipt",
            "processed_at",
            "failed_at",
            "acquirer_data",
            "batch_id",
            "error_code",
            "error_description",
            "created_at",
        ]
        read_only_fields = fields


class SubscriptionSerializer(serializers.ModelSerializer):
    """Admin view of a subscription joined with its payment."""

    user_email = serializers.EmailField(source="user.email", read_only=True)
    source_payment_id = serializers.CharField(
        source="source_payment.payment_id", read_only=True, default=None
    )
    amount = serializers.IntegerField(source="source_payment.amount", read_only=True, default=None)
    currency = serializers.CharField(source="source_payment.currency", read_only=True, default=None)

    class Meta:
        model = Subscription
        fields = [
            "id",
            "user_email",
            "service",
            "status",
            "start_date",
            "end_date",
            "grace_period_end",
            "cancelled_at",
            "source_payment_id",
            "amount",
            "currency",
            "created_at",
        ]
        read_only_fields = fields


# =============================================================================
# Service Results
# =============================================================================


class SubscriptionSnapshotSerializer(serializers.Serializer):
    id = serializers.CharField()
    service = serializers.CharField()
    status = serializers.CharField()
    start_date = serializers.DateTimeField()
    end_date = serializers.DateTimeField()
    days_remaining = serializers.IntegerField(allow_null=True)
    is_in_grace_period = serializers.BooleanField()
    grace_period_end = serializers.DateTimeField(allow_null=True)
    cancelled_at = serializers.DateTimeField(allow_null=True)
    source_payment_id = serializers.CharField(allow_null=True)
    created_at = serializers.DateTimeField()


class SubscriptionHistorySerializer(serializers.Serializer):
    subscriptions = SubscriptionSnapshotSerializer(many=True)
    count = serializers.IntegerField()


class SubscriptionAnalyticsSerializer(serializers.Serializer):
    total = serializers.IntegerField()
    active = serializers.IntegerField()
    grace_period = serializers.IntegerField()
    expired = serializers.IntegerField()
    cancelled = serializers.IntegerField()
    total_revenue = serializers.IntegerField()
    average_length_days = serializers.FloatField()
    recent = SubscriptionSerializer(many=True)


class PaymentConfirmationSerializer(serializers.Serializer):
    payment = PaymentSerializer()
    subscription = SubscriptionSerializer(allow_null=True)
    created = serializers.BooleanField()


class PaymentRefundSummarySerializer(serializers.Serializer):
    payment_id = serializers.CharField()
    order_id = serializers.CharField()
    currency = serializers.CharField()
    original_amount = serializers.IntegerField()
    total_refunded = serializers.IntegerField()
    remaining = serializers.IntegerField()
    fully_refunded = serializers.BooleanField()
    refunds = RefundSerializer(many=True)


class RefundSyncResultSerializer(serializers.Serializer):
    payment_id = serializers.CharField()
    created = serializers.ListField(child=serializers.CharField())
    attached = serializers.ListField(child=serializers.CharField())
    updated = serializers.ListField(child=serializers.CharField())


class MonthlyRevenueSerializer(serializers.Serializer):
    month = serializers.CharField()
    revenue = serializers.IntegerField()
    payments = serializers.IntegerField()


class MonthlyRefundSerializer(serializers.Serializer):
    month = serializers.CharField()
    refund_amount = serializers.IntegerField()
    refund_count = serializers.IntegerField()


class FinancialMetricsSerializer(serializers.Serializer):
    total_revenue = serializers.IntegerField()
    monthly_revenue = serializers.IntegerField()
    total_payments = serializers.IntegerField()
    total_refunds = serializers.IntegerField()
    monthly_refunds = serializers.IntegerField()
    refund_rate = serializers.DecimalField(max_digits=7, decimal_places=2)
    net_revenue = serializers.IntegerField()
    revenue_chart = MonthlyRevenueSerializer(many=True)


class RefundMetricsSerializer(serializers.Serializer):
    total_refunds = serializers.IntegerField()
    monthly_refunds = serializers.IntegerField()
    refund_rate = serializers.DecimalField(max_digits=7, decimal_places=2)
    total_refund_count = serializers.IntegerField()
    monthly_refund_count = serializers.IntegerField()
    count_by_status = serializers.DictField(child=serializers.IntegerField())
    count_by_speed = serializers.DictField(child=serializers.IntegerField())
    average_processing_hours = serializers.FloatField()
    refund_chart = MonthlyRefundSerializer(many=True)


class ServiceAnalyticsSerializer(serializers.Serializer):
    code = serializers.CharField()
    active_subscriptions = serializers.IntegerField()
    total_subscriptions = serializers.IntegerField()
    total_revenue = serializers.IntegerField()
    verified_payments = serializers.IntegerField()
