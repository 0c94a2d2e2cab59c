import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True, help_text="Timestamp when this record was last modified"
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "order_id",
                    models.CharField(
                        db_index=True, help_text="Gateway order ID (order_xxx)", max_length=255
                    ),
                ),
                (
                    "payment_id",
                    models.CharField(
                        help_text="Gateway payment ID (pay_xxx)", max_length=255, unique=True
                    ),
                ),
                (
                    "signature",
                    models.CharField(
                        help_text="Checkout signature (hex HMAC-SHA256 of order_id|payment_id)",
                        max_length=255,
                    ),
                ),
                (
                    "amount",
                    models.PositiveBigIntegerField(
                        blank=True,
                        help_text="Amount in smallest currency unit (e.g., paise)",
                        null=True,
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="INR", help_text="ISO 4217 currency code", max_length=3
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("verified", "Verified"), ("failed", "Failed")],
                        db_index=True,
                        default="verified",
                        help_text="Verification outcome",
                        max_length=20,
                    ),
                ),
                (
                    "user_email",
                    models.EmailField(
                        db_index=True,
                        help_text="Owner email, denormalized from the user",
                        max_length=254,
                    ),
                ),
                (
                    "service_type",
                    models.CharField(
                        choices=[("PREMIUM_ONE", "Premium One"), ("PREMIUM_PLUS", "Premium Plus")],
                        default="PREMIUM_ONE",
                        help_text="Offering purchased by this payment",
                        max_length=32,
                    ),
                ),
                (
                    "subscription_start",
                    models.DateTimeField(
                        blank=True, help_text="Start of the entitlement window granted", null=True
                    ),
                ),
                (
                    "subscription_end",
                    models.DateTimeField(
                        blank=True, help_text="End of the entitlement window granted", null=True
                    ),
                ),
                (
                    "verified_at",
                    models.DateTimeField(
                        blank=True,
                        db_index=True,
                        help_text="When the checkout signature was verified",
                        null=True,
                    ),
                ),
                (
                    "receipt",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Merchant receipt reference",
                        max_length=255,
                    ),
                ),
                (
                    "request_ip",
                    models.GenericIPAddressField(
                        blank=True, help_text="Client IP at verification", null=True
                    ),
                ),
                (
                    "user_agent",
                    models.TextField(
                        blank=True, default="", help_text="Client user agent at verification"
                    ),
                ),
                (
                    "notes",
                    models.JSONField(
                        blank=True, default=dict, help_text="Administrative annotations"
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        help_text="User who made the payment",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "created_at"], name="billing_pay_status_4a8f1c_idx"
                    ),
                    models.Index(
                        fields=["user_email", "created_at"], name="billing_pay_user_em_9b2d3e_idx"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Refund",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True, help_text="Timestamp when this record was last modified"
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "refund_id",
                    models.CharField(
                        blank=True,
                        help_text="Gateway refund ID (rfnd_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "order_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Gateway order ID of the source payment",
                        max_length=255,
                    ),
                ),
                (
                    "amount",
                    models.PositiveBigIntegerField(
                        help_text="Refund amount in smallest currency unit"
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="INR", help_text="ISO 4217 currency code", max_length=3
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("PROCESSED", "Processed"),
                            ("FAILED", "Failed"),
                        ],
                        db_index=True,
                        default="PENDING",
                        help_text="Current state of the refund (managed by FSM)",
                        max_length=50,
                    ),
                ),
                (
                    "speed_requested",
                    models.CharField(
                        choices=[("OPTIMUM", "Optimum"), ("NORMAL", "Normal")],
                        default="NORMAL",
                        help_text="Speed asked of the gateway",
                        max_length=10,
                    ),
                ),
                (
                    "speed_processed",
                    models.CharField(
                        blank=True,
                        choices=[("OPTIMUM", "Optimum"), ("NORMAL", "Normal")],
                        help_text="Speed the gateway actually used",
                        max_length=10,
                        null=True,
                    ),
                ),
                (
                    "user_email",
                    models.EmailField(
                        blank=True,
                        db_index=True,
                        default="",
                        help_text="Email of the payment owner",
                        max_length=254,
                    ),
                ),
                (
                    "processed_by",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Admin identity that initiated the refund",
                        max_length=254,
                    ),
                ),
                (
                    "reason",
                    models.TextField(
                        blank=True, default="", help_text="Why the refund was issued"
                    ),
                ),
                (
                    "notes",
                    models.TextField(
                        blank=True, default="", help_text="Free-form comment sent to the gateway"
                    ),
                ),
                (
                    "receipt",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Merchant receipt reference",
                        max_length=255,
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True, help_text="When the refund was processed", null=True
                    ),
                ),
                (
                    "failed_at",
                    models.DateTimeField(
                        blank=True, help_text="When the refund failed", null=True
                    ),
                ),
                (
                    "acquirer_data",
                    models.JSONField(
                        blank=True, default=dict, help_text="Acquirer references (arn, rrn, utr)"
                    ),
                ),
                (
                    "batch_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Gateway settlement batch ID",
                        max_length=255,
                    ),
                ),
                (
                    "error_code",
                    models.CharField(
                        blank=True, default="", help_text="Failure code", max_length=100
                    ),
                ),
                (
                    "error_description",
                    models.TextField(blank=True, default="", help_text="Failure description"),
                ),
                (
                    "payment",
                    models.ForeignKey(
                        help_text="Payment being refunded",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="billing.payment",
                    ),
                ),
            ],
            options={
                "verbose_name": "Refund",
                "verbose_name_plural": "Refunds",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["payment", "status"], name="billing_ref_payment_5c7e2a_idx"
                    ),
                    models.Index(
                        fields=["status", "created_at"], name="billing_ref_status_8d1f4b_idx"
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="refund_amount_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Subscription",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True, help_text="Timestamp when this record was last modified"
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "service",
                    models.CharField(
                        choices=[("PREMIUM_ONE", "Premium One"), ("PREMIUM_PLUS", "Premium Plus")],
                        default="PREMIUM_ONE",
                        help_text="Purchased offering",
                        max_length=32,
                    ),
                ),
                (
                    "start_date",
                    models.DateTimeField(help_text="Start of the entitlement window"),
                ),
                (
                    "end_date",
                    models.DateTimeField(
                        db_index=True, help_text="Nominal end of the entitlement window"
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("ACTIVE", "Active"),
                            ("GRACE_PERIOD", "Grace Period"),
                            ("EXPIRED", "Expired"),
                            ("CANCELLED", "Cancelled"),
                        ],
                        db_index=True,
                        default="ACTIVE",
                        help_text="Current lifecycle state (managed by FSM)",
                        max_length=50,
                    ),
                ),
                (
                    "cancelled_at",
                    models.DateTimeField(
                        blank=True, help_text="When the subscription was cancelled", null=True
                    ),
                ),
                (
                    "grace_period_end",
                    models.DateTimeField(
                        blank=True,
                        help_text="End of the grace window, computed once on entering it",
                        null=True,
                    ),
                ),
                (
                    "source_payment",
                    models.ForeignKey(
                        blank=True,
                        help_text="Payment that granted this entitlement",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="subscriptions",
                        to="billing.payment",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="Entitled user",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="subscriptions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Subscription",
                "verbose_name_plural": "Subscriptions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["user", "status"], name="billing_sub_user_id_3e6a9d_idx"
                    ),
                    models.Index(
                        fields=["status", "end_date"], name="billing_sub_status_7f2c5e_idx"
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("cancelled_at__isnull", False), ("status", "CANCELLED")),
                            models.Q(
                                models.Q(("status", "CANCELLED"), _negated=True),
                                ("cancelled_at__isnull", True),
                            ),
                            _connector="OR",
                        ),
                        name="subscription_cancelled_at_iff_cancelled",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(
                                ("grace_period_end__isnull", False),
                                ("status__in", ["GRACE_PERIOD", "EXPIRED"]),
                            ),
                            models.Q(
                                models.Q(("status__in", ["GRACE_PERIOD", "EXPIRED"]), _negated=True),
                                ("grace_period_end__isnull", True),
                            ),
                            _connector="OR",
                        ),
                        name="subscription_grace_end_iff_grace_or_expired",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="SubscriptionNotice",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True, help_text="Timestamp when this record was last modified"
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "notice_type",
                    models.CharField(
                        choices=[
                            ("EXPIRY_WARNING_3_DAYS", "Expires in 3 days"),
                            ("EXPIRY_WARNING_1_DAY", "Expires in 1 day"),
                            ("EXPIRED", "Expired"),
                        ],
                        help_text="Kind of notice sent",
                        max_length=32,
                    ),
                ),
                (
                    "subscription",
                    models.ForeignKey(
                        help_text="Subscription the notice was about",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="notices",
                        to="billing.subscription",
                    ),
                ),
            ],
            options={
                "verbose_name": "Subscription notice",
                "verbose_name_plural": "Subscription notices",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("subscription", "notice_type"),
                        name="subscription_notice_once",
                    ),
                ],
            },
        ),
    ]
