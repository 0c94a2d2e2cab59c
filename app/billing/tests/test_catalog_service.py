"""
Tests for ServiceCatalogService: cached lookups and admin management.
"""

from unittest.mock import patch

import pytest
from django.core.cache import cache
from django.test import override_settings

from billing.exceptions import ErrorCode
from billing.models import Service
from billing.services import ServiceCatalogService
from billing.services.catalog_service import invalidate_cached_service, service_cache_key
from billing.state_machines import DurationType, ServiceStatus, SubscriptionStatus
from billing.tests.factories import PaymentFactory, ServiceFactory, SubscriptionFactory

ADMIN = "admin@example.com"


def create(**overrides):
    kwargs = {
        "code": "PREMIUM_PLUS",
        "display_name": "Premium Plus",
        "amount": 999900,
        "duration": 1,
        "duration_type": DurationType.YEARS,
        "admin_email": ADMIN,
    }
    kwargs.update(overrides)
    return ServiceCatalogService.create_service(**kwargs)


# =============================================================================
# Cached lookups
# =============================================================================


@pytest.mark.django_db
class TestGetByCode:
    def test_lookup_is_cached(self, premium_service, django_assert_num_queries):
        ServiceCatalogService.get_by_code("PREMIUM_ONE")

        with django_assert_num_queries(0):
            service = ServiceCatalogService.get_by_code("PREMIUM_ONE")

        assert service.pk == premium_service.pk

    def test_key_is_namespaced(self, premium_service):
        ServiceCatalogService.get_by_code("PREMIUM_ONE")

        assert service_cache_key("PREMIUM_ONE") == "billing:service:PREMIUM_ONE"
        assert cache.get("billing:service:PREMIUM_ONE").code == "PREMIUM_ONE"

    @override_settings(SERVICE_CATALOG_CACHE_TTL_SECONDS=60)
    def test_entry_expires_after_configured_ttl(self, premium_service):
        with patch("billing.services.catalog_service.cache") as mock_cache:
            mock_cache.get.return_value = None

            ServiceCatalogService.get_by_code("PREMIUM_ONE")

        mock_cache.set.assert_called_once()
        assert mock_cache.set.call_args.kwargs["timeout"] == 60

    def test_unknown_code_not_cached(self, db):
        assert ServiceCatalogService.get_by_code("NOPE") is None
        assert cache.get(service_cache_key("NOPE")) is None

    def test_invalidate(self, premium_service):
        ServiceCatalogService.get_by_code("PREMIUM_ONE")

        invalidate_cached_service("PREMIUM_ONE")

        assert cache.get(service_cache_key("PREMIUM_ONE")) is None

    def test_writes_invalidate_cached_entry(self, premium_service):
        ServiceCatalogService.get_by_code("PREMIUM_ONE")

        ServiceCatalogService.update_service("PREMIUM_ONE", ADMIN, amount=129900)

        assert ServiceCatalogService.get_by_code("PREMIUM_ONE").amount == 129900


# =============================================================================
# Listing
# =============================================================================


@pytest.mark.django_db
class TestListServices:
    def test_filters_and_pagination(self):
        ServiceFactory(code="ALPHA")
        ServiceFactory(code="BETA", status=ServiceStatus.INACTIVE)
        ServiceFactory(code="GAMMA")

        result = ServiceCatalogService.list_services(
            status=ServiceStatus.ACTIVE, page=1, page_size=1
        )

        assert [service.code for service in result.data.items] == ["ALPHA"]
        assert result.data.pagination["total"] == 2
        assert result.data.pagination["has_next"] is True

    def test_search_matches_name(self):
        ServiceFactory(code="ALPHA", display_name="Family plan")
        ServiceFactory(code="BETA", display_name="Student plan")

        result = ServiceCatalogService.list_services(search="family")

        assert [service.code for service in result.data.items] == ["ALPHA"]

    def test_unknown_status(self, db):
        result = ServiceCatalogService.list_services(status="DELETED")

        assert result.error_code == ErrorCode.VALIDATION_ERROR

    def test_purchasable_only_active(self):
        ServiceFactory(code="ALPHA")
        ServiceFactory(code="BETA", status=ServiceStatus.ARCHIVED)

        assert [s.code for s in ServiceCatalogService.list_purchasable()] == ["ALPHA"]


# =============================================================================
# Admin writes
# =============================================================================


@pytest.mark.django_db
class TestCreateService:
    def test_creates_active_service(self):
        result = create(currency="usd", features=["Family sharing"])

        assert result.success, result.error
        service = Service.objects.get(code="PREMIUM_PLUS")
        assert service.status == ServiceStatus.ACTIVE
        assert service.currency == "USD"
        assert service.features == ["Family sharing"]
        assert service.created_by == ADMIN
        assert service.updated_by == ADMIN

    @pytest.mark.parametrize(
        "code",
        ["", "premium", "PREMIUM-ONE", "PREMIUM ONE", "A" * 33],
        ids=["empty", "lowercase", "dash", "space", "too-long"],
    )
    def test_invalid_code(self, code):
        result = create(code=code)

        assert result.error_code == ErrorCode.VALIDATION_ERROR
        assert not Service.objects.exists()

    def test_duplicate_code(self, premium_service):
        result = create(code="PREMIUM_ONE")

        assert result.error_code == ErrorCode.CONFLICT

    @pytest.mark.parametrize(
        "overrides",
        [
            {"amount": 0},
            {"amount": True},
            {"duration": -1},
            {"duration_type": "WEEKS"},
            {"display_name": "  "},
            {"description": "x" * 1001},
            {"features": ["ok", "x" * 201]},
        ],
        ids=["zero-amount", "bool-amount", "negative-duration", "duration-type", "name",
             "description", "feature"],
    )
    def test_invalid_fields(self, overrides):
        result = create(**overrides)

        assert result.error_code == ErrorCode.VALIDATION_ERROR


@pytest.mark.django_db
class TestUpdateService:
    def test_updates_fields(self, premium_service):
        result = ServiceCatalogService.update_service(
            "PREMIUM_ONE", ADMIN, display_name="Premium", features=["New"]
        )

        assert result.success
        premium_service.refresh_from_db()
        assert premium_service.display_name == "Premium"
        assert premium_service.features == ["New"]
        assert premium_service.updated_by == ADMIN

    def test_code_and_status_are_not_updatable(self, premium_service):
        result = ServiceCatalogService.update_service("PREMIUM_ONE", ADMIN, code="OTHER")

        assert result.error_code == ErrorCode.VALIDATION_ERROR

        result = ServiceCatalogService.update_service(
            "PREMIUM_ONE", ADMIN, status=ServiceStatus.ARCHIVED
        )

        assert result.error_code == ErrorCode.VALIDATION_ERROR

    def test_not_found(self, db):
        result = ServiceCatalogService.update_service("NOPE", ADMIN, amount=100)

        assert result.error_code == ErrorCode.NOT_FOUND

    def test_invalid_amount(self, premium_service):
        result = ServiceCatalogService.update_service("PREMIUM_ONE", ADMIN, amount=0)

        assert result.error_code == ErrorCode.VALIDATION_ERROR
        premium_service.refresh_from_db()
        assert premium_service.amount == 99900


@pytest.mark.django_db
class TestChangeStatus:
    def test_deactivate(self, premium_service):
        result = ServiceCatalogService.change_status("PREMIUM_ONE", ServiceStatus.INACTIVE, ADMIN)

        assert result.success
        assert ServiceCatalogService.get_by_code("PREMIUM_ONE").status == ServiceStatus.INACTIVE

    def test_same_status(self, premium_service):
        result = ServiceCatalogService.change_status("PREMIUM_ONE", ServiceStatus.ACTIVE, ADMIN)

        assert result.error_code == ErrorCode.VALIDATION_ERROR

    def test_unknown_status(self, premium_service):
        result = ServiceCatalogService.change_status("PREMIUM_ONE", "DELETED", ADMIN)

        assert result.error_code == ErrorCode.VALIDATION_ERROR

    @pytest.mark.parametrize(
        "status", [SubscriptionStatus.ACTIVE, SubscriptionStatus.GRACE_PERIOD]
    )
    def test_cannot_archive_with_entitled_subscriptions(self, premium_service, status):
        subscription = SubscriptionFactory(service="PREMIUM_ONE")
        if status == SubscriptionStatus.GRACE_PERIOD:
            subscription.enter_grace_period(subscription.end_date)
            subscription.save()

        result = ServiceCatalogService.change_status("PREMIUM_ONE", ServiceStatus.ARCHIVED, ADMIN)

        assert result.error_code == ErrorCode.BUSINESS_RULE_VIOLATION
        premium_service.refresh_from_db()
        assert premium_service.status == ServiceStatus.ACTIVE

    def test_deactivate_with_entitled_subscriptions(self, premium_service):
        SubscriptionFactory(service="PREMIUM_ONE")

        result = ServiceCatalogService.change_status("PREMIUM_ONE", ServiceStatus.INACTIVE, ADMIN)

        assert result.success


@pytest.mark.django_db
class TestCloneService:
    def test_copies_pricing_under_new_code(self, premium_service):
        result = ServiceCatalogService.clone_service("PREMIUM_ONE", "PREMIUM_ONE_PROMO", ADMIN)

        assert result.success, result.error
        clone = result.data
        assert clone.code == "PREMIUM_ONE_PROMO"
        assert clone.display_name == f"{premium_service.display_name} (Copy)"
        assert clone.amount == premium_service.amount
        assert clone.duration == premium_service.duration
        assert clone.features == premium_service.features
        assert clone.status == ServiceStatus.ACTIVE

    def test_clone_of_inactive_service_is_active(self):
        ServiceFactory(code="OLD", status=ServiceStatus.INACTIVE)

        result = ServiceCatalogService.clone_service("OLD", "NEW", ADMIN)

        assert result.data.status == ServiceStatus.ACTIVE

    def test_source_not_found(self, db):
        result = ServiceCatalogService.clone_service("NOPE", "NEW", ADMIN)

        assert result.error_code == ErrorCode.NOT_FOUND

    def test_target_exists(self, premium_service):
        ServiceFactory(code="TAKEN")

        result = ServiceCatalogService.clone_service("PREMIUM_ONE", "TAKEN", ADMIN)

        assert result.error_code == ErrorCode.CONFLICT


@pytest.mark.django_db
class TestServiceAnalytics:
    def test_counts_and_revenue(self, premium_service):
        active = SubscriptionFactory(service="PREMIUM_ONE")
        SubscriptionFactory(service="OTHER")
        PaymentFactory(user=active.user, amount=99900, service_type="PREMIUM_ONE")
        PaymentFactory(amount=50000, service_type="OTHER")

        result = ServiceCatalogService.get_service_analytics("PREMIUM_ONE")

        analytics = result.data
        assert analytics.active_subscriptions == 1
        assert analytics.total_subscriptions == 1
        assert analytics.total_revenue == 99900
        assert analytics.verified_payments == 1

    def test_not_found(self, db):
        result = ServiceCatalogService.get_service_analytics("NOPE")

        assert result.error_code == ErrorCode.NOT_FOUND
