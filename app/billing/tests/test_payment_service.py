"""
Tests for PaymentService: checkout order creation and verify_and_store().
"""

import pytest
from django.test import override_settings
from django.utils import timezone

from billing.exceptions import ErrorCode, RazorpayBadRequestError
from billing.models import Payment, PaymentOrder, Subscription
from billing.services import PaymentService
from billing.signatures import payment_confirmation_payload, sign
from billing.state_machines import (
    DurationType,
    OrderStatus,
    PaymentStatus,
    ServiceStatus,
    SubscriptionStatus,
)
from billing.tests.factories import (
    PaymentOrderFactory,
    ServiceFactory,
    SubscriptionFactory,
    UserFactory,
)

KEY_SECRET = "test_key_secret"


def checkout_signature(order_id, payment_id, secret=KEY_SECRET):
    return sign(payment_confirmation_payload(order_id, payment_id), secret)


def confirm(user, order, payment_id="pay_abc", **kwargs):
    return PaymentService.verify_and_store(
        user,
        order_id=order.order_id,
        payment_id=payment_id,
        signature=checkout_signature(order.order_id, payment_id),
        **kwargs,
    )


@pytest.fixture
def order(db, user, premium_service):
    return PaymentOrderFactory(user=user, service=premium_service, order_id="order_abc")


# =============================================================================
# Order creation
# =============================================================================


@pytest.mark.django_db
class TestCreateOrder:
    def test_order_is_priced_from_catalog(self, user, premium_service, gateway):
        result = PaymentService.create_order(user, "PREMIUM_ONE", receipt="rcpt_42")

        assert result.success, result.error
        gateway.create_order.assert_called_once_with(
            amount=99900,
            currency="INR",
            receipt="rcpt_42",
            notes={"service_code": "PREMIUM_ONE", "user_id": str(user.pk)},
        )

        order = PaymentOrder.objects.get(order_id=result.data.order_id)
        assert order.user == user
        assert order.service == premium_service
        assert order.amount == 99900
        assert order.currency == "INR"
        assert order.status == OrderStatus.CREATED
        assert order.gateway_status == "created"

    def test_client_notes_cannot_override_service_code(self, user, premium_service, gateway):
        PaymentService.create_order(
            user, "PREMIUM_ONE", notes={"service_code": "FREE", "campaign": "spring"}
        )

        notes = gateway.create_order.call_args.kwargs["notes"]
        assert notes["service_code"] == "PREMIUM_ONE"
        assert notes["campaign"] == "spring"

    def test_receipt_is_generated_when_omitted(self, user, premium_service, gateway):
        result = PaymentService.create_order(user, "PREMIUM_ONE")

        assert result.data.receipt.startswith("rcpt_")
        assert len(result.data.receipt) <= 40

    def test_receipt_too_long(self, user, premium_service, gateway):
        result = PaymentService.create_order(user, "PREMIUM_ONE", receipt="r" * 41)

        assert result.error_code == ErrorCode.VALIDATION_ERROR
        gateway.create_order.assert_not_called()

    def test_unknown_service(self, user, gateway):
        result = PaymentService.create_order(user, "GOLD_FOREVER")

        assert result.error_code == ErrorCode.NOT_FOUND
        gateway.create_order.assert_not_called()

    @pytest.mark.parametrize("status", [ServiceStatus.INACTIVE, ServiceStatus.ARCHIVED])
    def test_service_not_purchasable(self, user, gateway, status):
        ServiceFactory(code="RETIRED", status=status)

        result = PaymentService.create_order(user, "RETIRED")

        assert result.error_code == ErrorCode.BUSINESS_RULE_VIOLATION
        assert not PaymentOrder.objects.exists()

    def test_blank_service_code(self, user, gateway):
        result = PaymentService.create_order(user, "  ")

        assert result.error_code == ErrorCode.VALIDATION_ERROR

    @override_settings(RAZORPAY_KEY_ID="")
    def test_missing_api_keys(self, user, premium_service, gateway):
        result = PaymentService.create_order(user, "PREMIUM_ONE")

        assert result.error_code == ErrorCode.CONFIGURATION_ERROR
        gateway.create_order.assert_not_called()

    def test_gateway_rejection(self, user, premium_service, gateway):
        gateway.create_order.side_effect = RazorpayBadRequestError("Invalid currency")

        result = PaymentService.create_order(user, "PREMIUM_ONE")

        assert result.error_code == ErrorCode.INTEGRATION_FAILURE
        assert "Invalid currency" in result.error
        assert not PaymentOrder.objects.exists()

    def test_unexpected_gateway_error(self, user, premium_service, gateway):
        gateway.create_order.side_effect = KeyError("id")

        result = PaymentService.create_order(user, "PREMIUM_ONE")

        assert result.error_code == ErrorCode.INTEGRATION_FAILURE
        assert not PaymentOrder.objects.exists()


# =============================================================================
# Confirmation
# =============================================================================


@pytest.mark.django_db
class TestVerifyAndStore:
    def test_valid_confirmation_creates_payment_and_subscription(
        self, user, order, premium_service
    ):
        now = timezone.now()

        result = confirm(user, order, request_ip="203.0.113.7", now=now)

        assert result.success, result.error
        confirmation = result.data
        assert confirmation.created

        payment = Payment.objects.get(payment_id="pay_abc")
        assert payment.status == PaymentStatus.VERIFIED
        assert payment.amount == 99900
        assert payment.currency == "INR"
        assert payment.service_type == "PREMIUM_ONE"
        assert payment.receipt == order.receipt
        assert payment.user_email == user.email
        assert payment.request_ip == "203.0.113.7"
        assert payment.subscription_end == premium_service.period_end(now)

        subscription = confirmation.subscription
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.source_payment_id == payment.pk
        assert subscription.service == "PREMIUM_ONE"

        order.refresh_from_db()
        assert order.status == OrderStatus.PAID
        assert order.paid_at == now

        user.refresh_from_db()
        assert user.is_premium

    def test_amount_comes_from_order_not_current_price(self, user, order, premium_service):
        premium_service.amount = 149900
        premium_service.save()

        result = confirm(user, order)

        assert result.data.payment.amount == 99900

    def test_window_length_follows_service_duration(self, user):
        yearly = ServiceFactory(code="PREMIUM_PLUS", duration=1, duration_type=DurationType.YEARS)
        order = PaymentOrderFactory(user=user, service=yearly)
        now = timezone.now()

        result = confirm(user, order, now=now)

        subscription = result.data.subscription
        assert subscription.service == "PREMIUM_PLUS"
        assert subscription.end_date == yearly.period_end(now)
        assert subscription.end_date.year == now.year + 1

    def test_unknown_order(self, user, premium_service):
        result = PaymentService.verify_and_store(
            user,
            order_id="order_forged",
            payment_id="pay_abc",
            signature=checkout_signature("order_forged", "pay_abc"),
        )

        assert result.error_code == ErrorCode.NOT_FOUND
        assert not Payment.objects.exists()
        user.refresh_from_db()
        assert not user.is_premium

    def test_order_of_another_user(self, order):
        intruder = UserFactory()

        result = confirm(intruder, order)

        assert result.error_code == ErrorCode.NOT_FOUND
        assert not Payment.objects.exists()

    def test_second_payment_for_paid_order(self, user, order):
        confirm(user, order, payment_id="pay_first")

        result = confirm(user, order, payment_id="pay_second")

        assert result.error_code == ErrorCode.BUSINESS_RULE_VIOLATION
        assert list(Payment.objects.values_list("payment_id", flat=True)) == ["pay_first"]

    def test_replay_returns_existing_payment(self, user, order):
        first = confirm(user, order)

        second = confirm(user, order)

        assert second.success
        assert not second.data.created
        assert second.data.payment.pk == first.data.payment.pk
        assert second.data.subscription.pk == first.data.subscription.pk
        assert Payment.objects.filter(payment_id="pay_abc").count() == 1
        assert Subscription.objects.filter(user=user).count() == 1

    def test_signature_with_whitespace_accepted(self, user, order):
        signature = f"  {checkout_signature('order_abc', 'pay_abc')}\n"

        result = PaymentService.verify_and_store(
            user, order_id="order_abc", payment_id="pay_abc", signature=signature
        )

        assert result.success

    def test_bad_signature(self, user, order):
        result = PaymentService.verify_and_store(
            user,
            order_id="order_abc",
            payment_id="pay_abc",
            signature=checkout_signature("order_abc", "pay_other"),
        )

        assert not result.success
        assert result.error_code == ErrorCode.AUTHENTICATION_ERROR
        assert not Payment.objects.exists()
        order.refresh_from_db()
        assert order.status == OrderStatus.CREATED
        user.refresh_from_db()
        assert not user.is_premium

    def test_signature_from_other_secret(self, user, order):
        result = PaymentService.verify_and_store(
            user,
            order_id="order_abc",
            payment_id="pay_abc",
            signature=checkout_signature("order_abc", "pay_abc", secret="leaked"),
        )

        assert result.error_code == ErrorCode.AUTHENTICATION_ERROR

    @override_settings(RAZORPAY_KEY_SECRET="")
    def test_missing_secret(self, user, order):
        result = confirm(user, order)

        assert result.error_code == ErrorCode.CONFIGURATION_ERROR

    @pytest.mark.parametrize(
        "field",
        ["order_id", "payment_id", "signature"],
    )
    def test_required_fields(self, user, field):
        kwargs = {
            "order_id": "order_abc",
            "payment_id": "pay_abc",
            "signature": checkout_signature("order_abc", "pay_abc"),
        }
        kwargs[field] = "   "

        result = PaymentService.verify_and_store(user, **kwargs)

        assert result.error_code == ErrorCode.VALIDATION_ERROR

    def test_client_cannot_supply_amount(self, user, order):
        with pytest.raises(TypeError):
            PaymentService.verify_and_store(
                user,
                order_id="order_abc",
                payment_id="pay_abc",
                signature=checkout_signature("order_abc", "pay_abc"),
                amount=1,
            )

    def test_new_payment_supersedes_active_subscription(self, user, order):
        previous = SubscriptionFactory(user=user)
        now = timezone.now()

        result = confirm(user, order, now=now)

        assert result.success
        previous.refresh_from_db()
        assert previous.status == SubscriptionStatus.EXPIRED
        assert previous.grace_period_end == now
        assert (
            Subscription.objects.filter(user=user, status=SubscriptionStatus.ACTIVE).get()
            == result.data.subscription
        )
