"""
Tests for the billing REST API.
"""

from datetime import timedelta

import pytest
from django.urls import reverse
from django.utils import timezone

from billing.exceptions import RazorpayServerError
from billing.models import PaymentOrder, Refund
from billing.signatures import payment_confirmation_payload, sign
from billing.state_machines import RefundStatus, ServiceStatus, SubscriptionStatus
from billing.tests.factories import (
    PaymentFactory,
    PaymentOrderFactory,
    RefundFactory,
    ServiceFactory,
    SubscriptionFactory,
    UserFactory,
)


def checkout_signature(order_id, payment_id):
    return sign(payment_confirmation_payload(order_id, payment_id), "test_key_secret")


# =============================================================================
# Payments
# =============================================================================


@pytest.mark.django_db
class TestCreateOrderView:
    @property
    def url(self):
        return reverse("billing:create_order")

    def test_requires_authentication(self, api_client, premium_service):
        response = api_client.post(self.url, {"service_code": "PREMIUM_ONE"}, format="json")

        assert response.status_code == 401

    def test_created(self, user_client, user, premium_service, gateway):
        response = user_client.post(
            self.url, {"service_code": "PREMIUM_ONE", "receipt": "rcpt_view"}, format="json"
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["service_code"] == "PREMIUM_ONE"
        assert data["amount"] == 99900
        assert data["currency"] == "INR"
        assert data["receipt"] == "rcpt_view"
        assert data["status"] == "CREATED"
        assert data["key_id"] == "rzp_test_key"
        assert PaymentOrder.objects.get(order_id=data["order_id"]).user == user

    def test_amount_in_request_is_ignored(self, user_client, premium_service, gateway):
        response = user_client.post(
            self.url, {"service_code": "PREMIUM_ONE", "amount": 1}, format="json"
        )

        assert response.json()["data"]["amount"] == 99900
        assert gateway.create_order.call_args.kwargs["amount"] == 99900

    def test_unknown_service(self, user_client, gateway):
        response = user_client.post(self.url, {"service_code": "NOPE"}, format="json")

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_gateway_failure(self, user_client, premium_service, gateway):
        gateway.create_order.side_effect = RazorpayServerError("Gateway unavailable")

        response = user_client.post(self.url, {"service_code": "PREMIUM_ONE"}, format="json")

        assert response.status_code == 502
        assert response.json()["error_code"] == "INTEGRATION_FAILURE"


@pytest.mark.django_db
class TestVerifyPaymentView:
    @pytest.fixture(autouse=True)
    def order(self, user, premium_service):
        return PaymentOrderFactory(user=user, service=premium_service, order_id="order_view")

    @property
    def url(self):
        return reverse("billing:verify_payment")

    def payload(self, **overrides):
        data = {
            "order_id": "order_view",
            "payment_id": "pay_view",
            "signature": checkout_signature("order_view", "pay_view"),
        }
        data.update(overrides)
        return data

    def test_requires_authentication(self, api_client):
        response = api_client.post(self.url, self.payload(), format="json")

        assert response.status_code == 401

    def test_created(self, user_client, user):
        response = user_client.post(
            self.url, self.payload(), format="json", REMOTE_ADDR="198.51.100.4"
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["created"] is True
        assert body["data"]["payment"]["payment_id"] == "pay_view"
        assert body["data"]["payment"]["amount"] == 99900
        assert body["data"]["payment"]["service_type"] == "PREMIUM_ONE"
        assert body["data"]["subscription"]["status"] == SubscriptionStatus.ACTIVE
        assert body["data"]["subscription"]["user_email"] == user.email

    def test_client_amount_is_ignored(self, user_client):
        response = user_client.post(self.url, self.payload(amount=1), format="json")

        assert response.status_code == 201
        assert response.json()["data"]["payment"]["amount"] == 99900

    def test_order_of_another_user(self, api_client):
        api_client.force_authenticate(user=UserFactory())

        response = api_client.post(self.url, self.payload(), format="json")

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_replay_returns_200(self, user_client):
        user_client.post(self.url, self.payload(), format="json")

        response = user_client.post(self.url, self.payload(), format="json")

        assert response.status_code == 200
        assert response.json()["data"]["created"] is False

    def test_invalid_signature(self, user_client):
        response = user_client.post(
            self.url, self.payload(signature="0" * 64), format="json"
        )

        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "error": "Invalid payment signature",
            "error_code": "AUTHENTICATION_ERROR",
        }

    def test_missing_fields(self, user_client):
        response = user_client.post(self.url, {"order_id": "order_view"}, format="json")

        assert response.status_code == 400
        body = response.json()
        assert body["error_code"] == "VALIDATION_ERROR"
        assert "payment_id" in body["errors"]
        assert "signature" in body["errors"]


# =============================================================================
# Service catalog
# =============================================================================


@pytest.mark.django_db
class TestServiceCatalogViews:
    def test_public_catalog_lists_active_services(self, api_client, premium_service):
        ServiceFactory(code="RETIRED", status=ServiceStatus.INACTIVE)

        response = api_client.get(reverse("billing:service_catalog"))

        assert response.status_code == 200
        codes = [service["code"] for service in response.json()["data"]["services"]]
        assert codes == ["PREMIUM_ONE"]

    def test_admin_endpoints_reject_users(self, user_client, premium_service):
        assert user_client.get(reverse("billing:service_list")).status_code == 403
        assert (
            user_client.post(
                reverse("billing:service_status", args=["PREMIUM_ONE"]),
                {"status": "INACTIVE"},
                format="json",
            ).status_code
            == 403
        )

    def test_list_with_filters(self, admin_client, premium_service):
        ServiceFactory(code="LEGACY_PLAN", status=ServiceStatus.ARCHIVED)

        response = admin_client.get(
            reverse("billing:service_list"), {"status": "ARCHIVED", "search": "legacy"}
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert [service["code"] for service in data["services"]] == ["LEGACY_PLAN"]
        assert data["pagination"]["total"] == 1

    def test_create(self, admin_client, admin_user):
        response = admin_client.post(
            reverse("billing:service_list"),
            {
                "code": "PREMIUM_PLUS",
                "display_name": "Premium Plus",
                "amount": 999900,
                "duration": 1,
                "duration_type": "YEARS",
                "features": ["Everything in Premium One"],
            },
            format="json",
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["code"] == "PREMIUM_PLUS"
        assert data["status"] == "ACTIVE"
        assert data["created_by"] == admin_user.email

    def test_create_duplicate(self, admin_client, premium_service):
        response = admin_client.post(
            reverse("billing:service_list"),
            {"code": "PREMIUM_ONE", "display_name": "Again", "amount": 100, "duration": 1},
            format="json",
        )

        assert response.status_code == 409
        assert response.json()["error_code"] == "CONFLICT"

    def test_create_rejects_bad_code(self, admin_client):
        response = admin_client.post(
            reverse("billing:service_list"),
            {"code": "premium-one", "display_name": "Bad", "amount": 100, "duration": 1},
            format="json",
        )

        assert response.status_code == 400

    def test_detail_and_partial_update(self, admin_client, premium_service):
        url = reverse("billing:service_detail", args=["PREMIUM_ONE"])

        response = admin_client.patch(url, {"amount": 129900}, format="json")

        assert response.status_code == 200
        assert response.json()["data"]["amount"] == 129900
        assert admin_client.get(url).json()["data"]["amount"] == 129900

    def test_detail_not_found(self, admin_client):
        response = admin_client.get(reverse("billing:service_detail", args=["MISSING"]))

        assert response.status_code == 404

    def test_change_status(self, admin_client, premium_service):
        response = admin_client.post(
            reverse("billing:service_status", args=["PREMIUM_ONE"]),
            {"status": "INACTIVE"},
            format="json",
        )

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "INACTIVE"

    def test_archive_with_active_subscriptions(self, admin_client, premium_service):
        SubscriptionFactory(service="PREMIUM_ONE")

        response = admin_client.post(
            reverse("billing:service_status", args=["PREMIUM_ONE"]),
            {"status": "ARCHIVED"},
            format="json",
        )

        assert response.status_code == 409
        assert response.json()["error_code"] == "BUSINESS_RULE_VIOLATION"

    def test_clone(self, admin_client, premium_service):
        response = admin_client.post(
            reverse("billing:service_clone", args=["PREMIUM_ONE"]),
            {"code": "PREMIUM_ONE_PROMO"},
            format="json",
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["code"] == "PREMIUM_ONE_PROMO"
        assert data["display_name"] == f"{premium_service.display_name} (Copy)"
        assert data["amount"] == premium_service.amount

    def test_analytics(self, admin_client, premium_service):
        subscription = SubscriptionFactory(service="PREMIUM_ONE")
        PaymentFactory(user=subscription.user, amount=99900, service_type="PREMIUM_ONE")

        response = admin_client.get(reverse("billing:service_analytics", args=["PREMIUM_ONE"]))

        assert response.status_code == 200
        assert response.json()["data"] == {
            "code": "PREMIUM_ONE",
            "active_subscriptions": 1,
            "total_subscriptions": 1,
            "total_revenue": 99900,
            "verified_payments": 1,
        }


# =============================================================================
# Subscriptions
# =============================================================================


@pytest.mark.django_db
class TestMySubscriptionViews:
    def test_status(self, user_client, user):
        subscription = SubscriptionFactory(user=user)

        response = user_client.get(reverse("billing:my_subscription"))

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["id"] == str(subscription.id)
        assert data["status"] == SubscriptionStatus.ACTIVE
        assert data["days_remaining"] in (29, 30)
        assert data["is_in_grace_period"] is False

    def test_status_without_subscription(self, user_client):
        response = user_client.get(reverse("billing:my_subscription"))

        assert response.status_code == 404
        assert response.json()["error_code"] == "NO_SUBSCRIPTION"

    def test_history(self, user_client, user):
        SubscriptionFactory(
            user=user,
            status=SubscriptionStatus.EXPIRED,
            start_date=timezone.now() - timedelta(days=60),
            end_date=timezone.now() - timedelta(days=30),
            grace_period_end=timezone.now() - timedelta(days=28),
        )
        SubscriptionFactory(user=user)

        response = user_client.get(reverse("billing:my_subscription_history"))

        assert response.status_code == 200
        assert response.json()["data"]["count"] == 2

    def test_cancel(self, user_client, user, mailoutbox, django_capture_on_commit_callbacks):
        SubscriptionFactory(user=user)

        with django_capture_on_commit_callbacks(execute=True):
            response = user_client.post(reverse("billing:cancel_my_subscription"))

        assert response.status_code == 200
        assert response.json()["data"]["status"] == SubscriptionStatus.CANCELLED
        assert len(mailoutbox) == 1
        user.refresh_from_db()
        assert not user.is_premium

    def test_cancel_without_active_subscription(self, user_client):
        response = user_client.post(reverse("billing:cancel_my_subscription"))

        assert response.status_code == 409
        assert response.json()["error_code"] == "NO_ACTIVE_SUBSCRIPTION"


@pytest.mark.django_db
class TestAdminSubscriptionViews:
    def test_list_requires_staff(self, user_client):
        response = user_client.get(reverse("billing:subscription_list"))

        assert response.status_code == 403

    def test_list_filters_by_status(self, admin_client):
        SubscriptionFactory()
        SubscriptionFactory()
        SubscriptionFactory(status=SubscriptionStatus.CANCELLED, cancelled_at=timezone.now())

        response = admin_client.get(
            reverse("billing:subscription_list"), {"status": SubscriptionStatus.ACTIVE}
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert len(data["subscriptions"]) == 2
        assert data["pagination"]["total"] == 2

    def test_list_rejects_unknown_status(self, admin_client):
        response = admin_client.get(reverse("billing:subscription_list"), {"status": "PAUSED"})

        assert response.status_code == 400

    def test_analytics(self, admin_client):
        SubscriptionFactory()

        response = admin_client.get(reverse("billing:subscription_analytics"))

        assert response.status_code == 200
        assert response.json()["data"]["active"] == 1

    def test_admin_cancel(self, admin_client):
        subscription = SubscriptionFactory()

        response = admin_client.post(
            reverse("billing:admin_cancel_subscription"),
            {"email": subscription.user.email},
            format="json",
        )

        assert response.status_code == 200
        subscription.refresh_from_db()
        assert subscription.status == SubscriptionStatus.CANCELLED

    def test_admin_cancel_unknown_user(self, admin_client):
        response = admin_client.post(
            reverse("billing:admin_cancel_subscription"),
            {"email": "ghost@example.com"},
            format="json",
        )

        assert response.status_code == 404


# =============================================================================
# Refunds
# =============================================================================


@pytest.mark.django_db
class TestRefundViews:
    def test_initiate_requires_staff(self, user_client, verified_payment, gateway):
        response = user_client.post(
            reverse("billing:refund_list"),
            {"payment_id": verified_payment.payment_id, "amount": 1000},
            format="json",
        )

        assert response.status_code == 403
        gateway.create_refund.assert_not_called()

    def test_initiate(self, admin_client, admin_user, verified_payment, gateway):
        response = admin_client.post(
            reverse("billing:refund_list"),
            {"payment_id": verified_payment.payment_id, "amount": 2500, "reason": "duplicate"},
            format="json",
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["amount"] == 2500
        assert data["status"] == RefundStatus.PENDING
        assert data["processed_by"] == admin_user.email
        assert data["refund_id"].startswith("rfnd_mock_")

    def test_initiate_over_balance(self, admin_client, verified_payment, gateway):
        RefundFactory(payment=verified_payment, amount=9000)

        response = admin_client.post(
            reverse("billing:refund_list"),
            {"payment_id": verified_payment.payment_id, "amount": 2000},
            format="json",
        )

        assert response.status_code == 409
        assert response.json()["error_code"] == "BUSINESS_RULE_VIOLATION"
        gateway.create_refund.assert_not_called()

    def test_initiate_unknown_payment(self, admin_client, gateway):
        response = admin_client.post(
            reverse("billing:refund_list"),
            {"payment_id": "pay_missing", "amount": 100},
            format="json",
        )

        assert response.status_code == 404

    def test_list_and_detail(self, admin_client):
        refund = RefundFactory(amount=1200)
        RefundFactory(amount=800, status=RefundStatus.FAILED)

        listing = admin_client.get(reverse("billing:refund_list"), {"status": "PENDING"})
        detail = admin_client.get(
            reverse("billing:refund_detail", kwargs={"refund_id": refund.refund_id})
        )

        assert listing.status_code == 200
        assert [r["refund_id"] for r in listing.json()["data"]["refunds"]] == [refund.refund_id]
        assert listing.json()["data"]["total_amount"] == 1200
        assert detail.status_code == 200
        assert detail.json()["data"]["payment_id"] == refund.payment.payment_id

    def test_detail_not_found(self, admin_client):
        response = admin_client.get(
            reverse("billing:refund_detail", kwargs={"refund_id": "rfnd_missing"})
        )

        assert response.status_code == 404

    def test_payment_summary(self, admin_client):
        payment = PaymentFactory(amount=10000)
        RefundFactory(payment=payment, amount=3000)
        RefundFactory(payment=payment, amount=500, status=RefundStatus.FAILED)

        response = admin_client.get(
            reverse("billing:payment_refunds", kwargs={"payment_id": payment.payment_id})
        )

        data = response.json()["data"]
        assert data["total_refunded"] == 3000
        assert data["remaining"] == 7000
        assert data["fully_refunded"] is False
        assert len(data["refunds"]) == 2

    def test_sync(self, admin_client, verified_payment, gateway):
        response = admin_client.post(
            reverse("billing:payment_refunds_sync", kwargs={"payment_id": verified_payment.payment_id})
        )

        assert response.status_code == 200
        assert response.json()["data"]["created"] == []
        gateway.fetch_refunds.assert_called_once_with(verified_payment.payment_id)
        assert not Refund.objects.exists()


# =============================================================================
# Metrics
# =============================================================================


@pytest.mark.django_db
class TestMetricsViews:
    def test_financial_metrics(self, admin_client):
        payment = PaymentFactory(amount=10000)
        RefundFactory(
            payment=payment, amount=2500, status=RefundStatus.PROCESSED, processed_at=timezone.now()
        )

        response = admin_client.get(reverse("billing:financial_metrics"))

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["net_revenue"] == 7500
        assert data["refund_rate"] == "25.00"
        assert len(data["revenue_chart"]) == 12

    def test_refund_metrics_requires_staff(self, user_client):
        response = user_client.get(reverse("billing:refund_metrics"))

        assert response.status_code == 403
