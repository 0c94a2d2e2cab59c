"""
Billing admin configuration.

Payments and refunds are read-only here: refunds are issued through the
API so the ledger checks run, and status changes arrive by webhook.
Catalog edits made here drop the cached service like API edits do.
"""

from django.contrib import admin

from billing.models import (
    Payment,
    PaymentOrder,
    Refund,
    Service,
    Subscription,
    SubscriptionNotice,
)
from billing.services.catalog_service import invalidate_cached_service

__all__ = [
    "PaymentAdmin",
    "PaymentOrderAdmin",
    "RefundAdmin",
    "ServiceAdmin",
    "SubscriptionAdmin",
    "SubscriptionNoticeAdmin",
]


class RefundInline(admin.TabularInline):
    model = Refund
    extra = 0
    can_delete = False
    fields = ["refund_id", "amount", "status", "speed_requested", "processed_by", "created_at"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = [
        "payment_id",
        "order_id",
        "user_email",
        "amount",
        "currency",
        "status",
        "service_type",
        "created_at",
    ]
    list_filter = ["status", "service_type", "currency"]
    search_fields = ["payment_id", "order_id", "user_email"]
    ordering = ["-created_at"]
    inlines = [RefundInline]
    readonly_fields = [
        "id",
        "order_id",
        "payment_id",
        "signature",
        "amount",
        "currency",
        "status",
        "user",
        "user_email",
        "service_type",
        "subscription_start",
        "subscription_end",
        "verified_at",
        "receipt",
        "request_ip",
        "user_agent",
        "created_at",
        "updated_at",
    ]

    def has_add_permission(self, request):
        return False


@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    list_display = [
        "code",
        "display_name",
        "amount",
        "currency",
        "duration",
        "duration_type",
        "status",
        "updated_at",
    ]
    list_filter = ["status", "duration_type"]
    search_fields = ["code", "display_name"]
    readonly_fields = ["id", "created_by", "updated_by", "created_at", "updated_at"]

    def get_readonly_fields(self, request, obj=None):
        # Payments and subscriptions reference services by code
        if obj is not None:
            return [*self.readonly_fields, "code"]
        return self.readonly_fields

    def save_model(self, request, obj, form, change):
        if not change:
            obj.created_by = request.user.email
        obj.updated_by = request.user.email
        super().save_model(request, obj, form, change)
        invalidate_cached_service(obj.code)

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(PaymentOrder)
class PaymentOrderAdmin(admin.ModelAdmin):
    list_display = ["order_id", "user", "service", "amount", "currency", "status", "created_at"]
    list_filter = ["status", "service"]
    search_fields = ["order_id", "receipt", "user__email"]
    ordering = ["-created_at"]
    readonly_fields = [field.name for field in PaymentOrder._meta.fields]

    def has_add_permission(self, request):
        return False


@admin.register(Refund)
class RefundAdmin(admin.ModelAdmin):
    list_display = [
        "refund_id",
        "payment",
        "amount",
        "currency",
        "status",
        "speed_requested",
        "speed_processed",
        "processed_by",
        "created_at",
    ]
    list_filter = ["status", "speed_requested", "speed_processed"]
    search_fields = ["refund_id", "order_id", "user_email", "payment__payment_id"]
    ordering = ["-created_at"]
    readonly_fields = [field.name for field in Refund._meta.fields]

    fieldsets = (
        (None, {"fields": ("id", "refund_id", "payment", "order_id")}),
        ("Amount", {"fields": ("amount", "currency")}),
        (
            "Status",
            {"fields": ("status", "speed_requested", "speed_processed", "processed_at", "failed_at")},
        ),
        ("Context", {"fields": ("user_email", "processed_by", "reason", "notes", "receipt")}),
        (
            "Gateway",
            {
                "fields": ("acquirer_data", "batch_id", "error_code", "error_description"),
                "classes": ("collapse",),
            },
        ),
        ("Timestamps", {"fields": ("created_at", "updated_at", "version")}),
    )

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "user",
        "service",
        "status",
        "start_date",
        "end_date",
        "grace_period_end",
        "cancelled_at",
    ]
    list_filter = ["status", "service"]
    search_fields = ["user__email", "source_payment__payment_id"]
    ordering = ["-created_at"]
    raw_id_fields = ["user", "source_payment"]
    readonly_fields = ["id", "status", "version", "created_at", "updated_at"]


@admin.register(SubscriptionNotice)
class SubscriptionNoticeAdmin(admin.ModelAdmin):
    list_display = ["subscription", "notice_type", "created_at"]
    list_filter = ["notice_type"]
    ordering = ["-created_at"]
