"""
Pytest fixtures for billing tests.

Usage:
    def test_refund(verified_payment, gateway):
        result = RefundService.initiate(verified_payment.payment_id, amount=2500)
        gateway.create_refund.assert_called_once()

    def test_checkout(user, premium_service, gateway):
        result = PaymentService.create_order(user, premium_service.code)
        gateway.create_order.assert_called_once()
"""

from unittest.mock import MagicMock, patch

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from billing.services import PaymentService, RefundService
from billing.tests.factories import (
    AdminUserFactory,
    PaymentFactory,
    ServiceFactory,
    UserFactory,
    gateway_order,
    gateway_refund,
)


@pytest.fixture(autouse=True)
def clear_cache():
    """Payment and catalog lookups go through the Django cache; start every test cold."""
    cache.clear()
    yield
    cache.clear()


# =============================================================================
# Users
# =============================================================================


@pytest.fixture
def user(db):
    return UserFactory()


@pytest.fixture
def admin_user(db):
    return AdminUserFactory()


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def user_client(api_client, user):
    api_client.force_authenticate(user=user)
    return api_client


@pytest.fixture
def admin_client(admin_user):
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client


# =============================================================================
# Payments & Gateway
# =============================================================================


@pytest.fixture
def premium_service(db):
    """ACTIVE PREMIUM_ONE service: 99900 INR for one month."""
    return ServiceFactory()


@pytest.fixture
def verified_payment(db, user):
    """Verified payment of 10000 owned by ``user``."""
    return PaymentFactory(user=user, amount=10000)


@pytest.fixture
def gateway():
    """
    Mock gateway adapter installed on RefundService and PaymentService.

    create_order and create_refund echo a created order or a pending refund
    for whatever was requested unless a test sets return_value or
    side_effect.
    """
    adapter = MagicMock()
    counter = {"n": 0}

    def _create_order(amount, currency, receipt, notes=None):
        counter["n"] += 1
        return gateway_order(
            f"order_mock_{counter['n']}", amount, currency=currency, receipt=receipt
        )

    def _create_refund(payment_id, amount, speed="normal", notes=None, receipt=None):
        counter["n"] += 1
        return gateway_refund(f"rfnd_mock_{counter['n']}", amount, payment_id=payment_id)

    adapter.create_order.side_effect = _create_order
    adapter.create_refund.side_effect = _create_refund
    adapter.fetch_refunds.return_value = []

    RefundService.set_gateway_adapter(adapter)
    PaymentService.set_gateway_adapter(adapter)
    try:
        yield adapter
    finally:
        RefundService.set_gateway_adapter(None)
        PaymentService.set_gateway_adapter(None)


@pytest.fixture
def mock_redis_lock():
    """Mock Redis for DistributedLock."""
    mock_redis = MagicMock()
    mock_redis.set.return_value = True
    mock_redis.eval.return_value = 1

    with patch("billing.locks.get_redis_connection", return_value=mock_redis):
        yield mock_redis
