"""
Service catalog: the offerings users can buy, and their admin management.

Lookups by code go through the Django cache, since every checkout order
reads the price of one service. Every write through this service drops
the cached entry for the code it touched.

Usage:
    from billing.services import ServiceCatalogService

    service = ServiceCatalogService.get_by_code("PREMIUM_ONE")

    result = ServiceCatalogService.create_service(
        code="PREMIUM_PLUS",
        display_name="Premium Plus",
        amount=999900,
        duration=1,
        duration_type=DurationType.YEARS,
        admin_email="admin@example.com",
    )
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from django.conf import settings
from django.core.cache import cache
from django.db import IntegrityError, transaction
from django.db.models import Count, Q, Sum

from core.helpers import calculate_pagination
from core.services import BaseService, ServiceResult

from billing.exceptions import ErrorCode
from billing.models import Payment, Service, Subscription
from billing.models.service import SERVICE_CODE_PATTERN
from billing.state_machines import (
    DurationType,
    PaymentStatus,
    ServiceStatus,
    SubscriptionStatus,
)

SERVICE_CACHE_PREFIX = "billing:service:"

MAX_DESCRIPTION_LENGTH = 1000
MAX_FEATURE_LENGTH = 200

UPDATABLE_FIELDS = (
    "display_name",
    "description",
    "amount",
    "currency",
    "duration",
    "duration_type",
    "features",
)


def service_cache_key(code: str) -> str:
    return f"{SERVICE_CACHE_PREFIX}{code}"


def invalidate_cached_service(code: str) -> None:
    cache.delete(service_cache_key(code))


@dataclass
class ServicePage:
    items: list[Service]
    pagination: dict


@dataclass
class ServiceAnalytics:
    """Per-service counters. Revenue is in smallest currency unit."""

    code: str
    active_subscriptions: int
    total_subscriptions: int
    total_revenue: int
    verified_payments: int


class ServiceCatalogService(BaseService):
    """Reads and admin writes for the service catalog."""

    # =========================================================================
    # Reads
    # =========================================================================

    @classmethod
    def get_by_code(cls, code: str) -> Service | None:
        """Service with this code, read through the cache. None if unknown."""
        cache_key = service_cache_key(code)
        service = cache.get(cache_key)
        if service is not None:
            return service

        service = Service.objects.filter(code=code).first()
        if service is not None:
            cache.set(cache_key, service, timeout=settings.SERVICE_CATALOG_CACHE_TTL_SECONDS)
        return service

    @classmethod
    def get_service(cls, code: str) -> ServiceResult[Service]:
        service = cls.get_by_code(code)
        if service is None:
            return ServiceResult.failure(
                f"Service {code} not found", error_code=ErrorCode.NOT_FOUND
            )
        return ServiceResult.success(service)

    @classmethod
    def list_services(
        cls,
        status: str | None = None,
        search: str = "",
        page: int = 1,
        page_size: int = 20,
    ) -> ServiceResult[ServicePage]:
        """Catalog listing ordered by code, optionally filtered by status and text."""
        queryset = Service.objects.all()
        if status:
            if status not in ServiceStatus.values:
                return ServiceResult.failure(
                    f"Unknown status: {status}",
                    error_code=ErrorCode.VALIDATION_ERROR,
                )
            queryset = queryset.filter(status=status)

        search = (search or "").strip()
        if search:
            queryset = queryset.filter(
                Q(code__icontains=search)
                | Q(display_name__icontains=search)
                | Q(description__icontains=search)
            )

        pagination = calculate_pagination(queryset.count(), page, page_size)
        offset = pagination["offset"]
        items = list(queryset.order_by("code")[offset : offset + page_size])
        return ServiceResult.success(ServicePage(items=items, pagination=pagination))

    @classmethod
    def list_purchasable(cls) -> list[Service]:
        return list(Service.objects.filter(status=ServiceStatus.ACTIVE).order_by("code"))

    # =========================================================================
    # Admin Writes
    # =========================================================================

    @classmethod
    def create_service(
        cls,
        code: str,
        display_name: str,
        amount: int,
        duration: int,
        admin_email: str,
        duration_type: str = DurationType.MONTHS,
        currency: str | None = None,
        description: str = "",
        features: list[str] | None = None,
    ) -> ServiceResult[Service]:
        """
        Add an ACTIVE service to the catalog.

        Failure codes: VALIDATION_ERROR, CONFLICT.
        """
        code = (code or "").strip()
        invalid = cls._validate_code(code) or cls._validate_fields(
            display_name=display_name,
            amount=amount,
            duration=duration,
            duration_type=duration_type,
            description=description,
            features=features or [],
        )
        if invalid:
            return invalid

        try:
            with transaction.atomic():
                service = Service.objects.create(
                    code=code,
                    display_name=display_name.strip(),
                    description=description,
                    amount=amount,
                    currency=(currency or settings.DEFAULT_CURRENCY).upper(),
                    duration=duration,
                    duration_type=duration_type,
                    features=list(features or []),
                    status=ServiceStatus.ACTIVE,
                    created_by=admin_email,
                    updated_by=admin_email,
                )
        except IntegrityError:
            return ServiceResult.failure(
                f"Service code already exists: {code}", error_code=ErrorCode.CONFLICT
            )

        invalidate_cached_service(code)
        cls.get_logger().info(
            "Service created",
            extra={"service_code": code, "admin_email": admin_email},
        )
        return ServiceResult.success(service)

    @classmethod
    def update_service(
        cls, code: str, admin_email: str, **changes
    ) -> ServiceResult[Service]:
        """
        Change display and pricing fields of a service.

        Only the fields in UPDATABLE_FIELDS may be passed. Price and duration
        changes apply to orders created afterwards.
        """
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            return ServiceResult.failure(
                f"Fields cannot be updated: {', '.join(sorted(unknown))}",
                error_code=ErrorCode.VALIDATION_ERROR,
            )

        service = Service.objects.filter(code=code).first()
        if service is None:
            return ServiceResult.failure(
                f"Service {code} not found", error_code=ErrorCode.NOT_FOUND
            )

        invalid = cls._validate_fields(**changes)
        if invalid:
            return invalid

        if "currency" in changes:
            changes["currency"] = changes["currency"].upper()
        for name, value in changes.items():
            setattr(service, name, value)
        service.updated_by = admin_email
        service.save(update_fields=[*changes, "updated_by", "updated_at"])

        invalidate_cached_service(code)
        cls.get_logger().info(
            "Service updated",
            extra={
                "service_code": code,
                "admin_email": admin_email,
                "fields": sorted(changes),
            },
        )
        return ServiceResult.success(service)

    @classmethod
    def change_status(
        cls, code: str, status: str, admin_email: str
    ) -> ServiceResult[Service]:
        """
        Move a service between ACTIVE, INACTIVE and ARCHIVED.

        A service with entitled subscriptions cannot be archived; it can be
        made INACTIVE, which only stops new orders.
        """
        if status not in ServiceStatus.values:
            return ServiceResult.failure(
                f"Unknown status: {status}", error_code=ErrorCode.VALIDATION_ERROR
            )

        service = Service.objects.filter(code=code).first()
        if service is None:
            return ServiceResult.failure(
                f"Service {code} not found", error_code=ErrorCode.NOT_FOUND
            )
        if service.status == status:
            return ServiceResult.failure(
                f"Service is already {status}", error_code=ErrorCode.VALIDATION_ERROR
            )

        if status == ServiceStatus.ARCHIVED:
            entitled = Subscription.objects.filter(
                service=code, status__in=SubscriptionStatus.entitled()
            ).count()
            if entitled:
                return ServiceResult.failure(
                    f"Cannot archive service with {entitled} active subscriptions",
                    error_code=ErrorCode.BUSINESS_RULE_VIOLATION,
                )

        previous = service.status
        service.status = status
        service.updated_by = admin_email
        service.save(update_fields=["status", "updated_by", "updated_at"])

        invalidate_cached_service(code)
        cls.get_logger().info(
            "Service status changed",
            extra={
                "service_code": code,
                "from_status": previous,
                "to_status": status,
                "admin_email": admin_email,
            },
        )
        return ServiceResult.success(service)

    @classmethod
    def clone_service(
        cls, code: str, new_code: str, admin_email: str
    ) -> ServiceResult[Service]:
        """Copy a service under a new code. The copy starts ACTIVE."""
        source = Service.objects.filter(code=code).first()
        if source is None:
            return ServiceResult.failure(
                f"Service {code} not found", error_code=ErrorCode.NOT_FOUND
            )

        return cls.create_service(
            code=new_code,
            display_name=f"{source.display_name} (Copy)"[:100],
            description=source.description,
            amount=source.amount,
            currency=source.currency,
            duration=source.duration,
            duration_type=source.duration_type,
            features=list(source.features),
            admin_email=admin_email,
        )

    # =========================================================================
    # Analytics
    # =========================================================================

    @classmethod
    def get_service_analytics(cls, code: str) -> ServiceResult[ServiceAnalytics]:
        if not Service.objects.filter(code=code).exists():
            return ServiceResult.failure(
                f"Service {code} not found", error_code=ErrorCode.NOT_FOUND
            )

        counts = Subscription.objects.filter(service=code).aggregate(
            total=Count("id"),
            active=Count("id", filter=Q(status__in=SubscriptionStatus.entitled())),
        )
        payments = Payment.objects.filter(
            service_type=code, status=PaymentStatus.VERIFIED
        ).aggregate(count=Count("id"), revenue=Sum("amount"))

        return ServiceResult.success(
            ServiceAnalytics(
                code=code,
                active_subscriptions=counts["active"],
                total_subscriptions=counts["total"],
                total_revenue=payments["revenue"] or 0,
                verified_payments=payments["count"],
            )
        )

    # =========================================================================
    # Validation
    # =========================================================================

    @classmethod
    def _validate_code(cls, code: str) -> ServiceResult | None:
        if not code:
            return ServiceResult.failure(
                "Service code cannot be empty", error_code=ErrorCode.VALIDATION_ERROR
            )
        if len(code) > 32 or not re.match(SERVICE_CODE_PATTERN, code):
            return ServiceResult.failure(
                "Service code must be uppercase alphanumeric with underscores "
                "(e.g., PREMIUM_ONE)",
                error_code=ErrorCode.VALIDATION_ERROR,
            )
        return None

    @classmethod
    def _validate_fields(cls, **fields) -> ServiceResult | None:
        def invalid(message):
            return ServiceResult.failure(message, error_code=ErrorCode.VALIDATION_ERROR)

        if "display_name" in fields and not (fields["display_name"] or "").strip():
            return invalid("Display name is required")
        for name in ("amount", "duration"):
            if name in fields:
                value = fields[name]
                if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                    return invalid(f"{name.capitalize()} must be a positive integer")
        if "duration_type" in fields and fields["duration_type"] not in DurationType.values:
            return invalid(f"Unknown duration type: {fields['duration_type']}")
        if "currency" in fields and len(fields["currency"] or "") != 3:
            return invalid("Currency must be a 3-letter ISO code")
        if len(fields.get("description") or "") > MAX_DESCRIPTION_LENGTH:
            return invalid(
                f"Service description must not exceed {MAX_DESCRIPTION_LENGTH} characters"
            )
        for feature in fields.get("features") or []:
            if len(feature) > MAX_FEATURE_LENGTH:
                return invalid(
                    f"Feature description must not exceed {MAX_FEATURE_LENGTH} characters"
                )
        return None
