"""
Add the service catalog and server-created checkout orders.

Payment.service_type and Subscription.service now hold catalog service
codes instead of a fixed choice list. The two offerings that existed
before the catalog are seeded as ACTIVE services.
"""

import uuid

import django.core.validators
import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models

SEED_SERVICES = [
    {
        "code": "PREMIUM_ONE",
        "display_name": "Premium One",
        "description": "Premium access for one month.",
        "amount": 99900,
        "currency": "INR",
        "duration": 1,
        "duration_type": "MONTHS",
    },
    {
        "code": "PREMIUM_PLUS",
        "display_name": "Premium Plus",
        "description": "Premium access for one year.",
        "amount": 999900,
        "currency": "INR",
        "duration": 1,
        "duration_type": "YEARS",
    },
]


def seed_services(apps, schema_editor):
    Service = apps.get_model("billing", "Service")
    for data in SEED_SERVICES:
        Service.objects.get_or_create(
            code=data["code"],
            defaults={**data, "status": "ACTIVE", "created_by": "system", "updated_by": "system"},
        )


def remove_seeded_services(apps, schema_editor):
    Service = apps.get_model("billing", "Service")
    Service.objects.filter(
        code__in=[data["code"] for data in SEED_SERVICES], orders__isnull=True
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("billing", "0002_subscription_sweep_schedule"),
    ]

    operations = [
        migrations.CreateModel(
            name="Service",
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
                    "code",
                    models.CharField(
                        help_text="Service code, e.g. PREMIUM_ONE",
                        max_length=32,
                        unique=True,
                        validators=[django.core.validators.RegexValidator("^[A-Z0-9_]+$")],
                    ),
                ),
                ("display_name", models.CharField(help_text="User-facing name", max_length=100)),
                (
                    "description",
                    models.TextField(blank=True, default="", help_text="User-facing description"),
                ),
                (
                    "amount",
                    models.PositiveBigIntegerField(
                        help_text="Price in smallest currency unit (paise)"
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="INR", help_text="ISO 4217 currency code", max_length=3
                    ),
                ),
                (
                    "duration",
                    models.PositiveIntegerField(
                        help_text="Number of duration_type units in one entitlement window"
                    ),
                ),
                (
                    "duration_type",
                    models.CharField(
                        choices=[("DAYS", "Days"), ("MONTHS", "Months"), ("YEARS", "Years")],
                        default="MONTHS",
                        max_length=10,
                    ),
                ),
                (
                    "features",
                    models.JSONField(
                        blank=True, default=list, help_text="Feature descriptions, in display order"
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("ACTIVE", "Active"),
                            ("INACTIVE", "Inactive"),
                            ("ARCHIVED", "Archived"),
                        ],
                        db_index=True,
                        default="ACTIVE",
                        max_length=10,
                    ),
                ),
                ("created_by", models.EmailField(blank=True, default="", max_length=254)),
                ("updated_by", models.EmailField(blank=True, default="", max_length=254)),
            ],
            options={
                "verbose_name": "Service",
                "verbose_name_plural": "Services",
                "ordering": ["code"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(amount__gt=0), name="service_amount_positive"
                    ),
                    models.CheckConstraint(
                        condition=models.Q(duration__gt=0), name="service_duration_positive"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentOrder",
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
                        help_text="Gateway order ID (order_xxx)", max_length=255, unique=True
                    ),
                ),
                (
                    "amount",
                    models.PositiveBigIntegerField(help_text="Amount in smallest currency unit"),
                ),
                (
                    "currency",
                    models.CharField(help_text="ISO 4217 currency code", max_length=3),
                ),
                (
                    "receipt",
                    models.CharField(help_text="Merchant receipt reference", max_length=40),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[("CREATED", "Created"), ("PAID", "Paid")],
                        db_index=True,
                        default="CREATED",
                        max_length=50,
                    ),
                ),
                ("gateway_status", models.CharField(blank=True, default="", max_length=32)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                (
                    "service",
                    models.ForeignKey(
                        help_text="Catalog service ordered",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to="billing.service",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="Buyer",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payment_orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment Order",
                "verbose_name_plural": "Payment Orders",
                "ordering": ["-created_at"],
            },
        ),
        migrations.AlterField(
            model_name="payment",
            name="service_type",
            field=models.CharField(
                help_text="Catalog service code purchased by this payment", max_length=32
            ),
        ),
        migrations.AlterField(
            model_name="subscription",
            name="service",
            field=models.CharField(
                help_text="Catalog service code of the purchase", max_length=32
            ),
        ),
        migrations.RunPython(seed_services, remove_seeded_services),
    ]
