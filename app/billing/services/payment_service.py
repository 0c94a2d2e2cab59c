"""
Checkout: gateway order creation and payment confirmation.

Checkout runs in two steps:

1. create_order() prices a catalog service, creates the gateway order for
   that amount and stores it as a PaymentOrder owned by the buyer.
2. The client pays on the gateway's checkout and sends back order_id,
   payment_id and signature. verify_and_store() checks the HMAC, reads the
   amount, currency and service from the stored order, writes a verified
   Payment and starts the subscription window, all in one transaction.

Replaying the same payment_id returns the stored payment.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import uuid4

from django.conf import settings
from django.db import IntegrityError, InterfaceError, OperationalError, transaction
from django.utils import timezone

from core.services import BaseService, ServiceResult

from billing.adapters import RazorpayAdapter
from billing.exceptions import ErrorCode, RazorpayError
from billing.models import Payment, PaymentOrder, Subscription
from billing.services.catalog_service import ServiceCatalogService
from billing.services.refund_service import invalidate_cached_payment
from billing.services.subscription_service import SubscriptionService
from billing.signatures import verify_payment_confirmation
from billing.state_machines import OrderStatus, PaymentStatus

if TYPE_CHECKING:
    from datetime import datetime

    from accounts.models import User


# The gateway caps receipts at 40 characters
MAX_RECEIPT_LENGTH = 40


@dataclass
class PaymentConfirmation:
    payment: Payment
    subscription: Subscription | None
    created: bool


class PaymentService(BaseService):
    """
    Creates checkout orders and records confirmed payments.

    The gateway adapter can be swapped with set_gateway_adapter() in tests.
    """

    _gateway_adapter: type | None = None

    @classmethod
    def get_gateway_adapter(cls) -> type:
        return cls._gateway_adapter or RazorpayAdapter

    @classmethod
    def set_gateway_adapter(cls, adapter: type | None) -> None:
        cls._gateway_adapter = adapter

    # =========================================================================
    # Orders
    # =========================================================================

    @classmethod
    def create_order(
        cls,
        user: User,
        service_code: str,
        receipt: str = "",
        notes: dict[str, str] | None = None,
    ) -> ServiceResult[PaymentOrder]:
        """
        Create a gateway order for one purchase of a catalog service.

        The amount and currency come from the catalog; the client only
        names the service.

        Failure codes: VALIDATION_ERROR, NOT_FOUND, BUSINESS_RULE_VIOLATION,
        CONFIGURATION_ERROR, INTEGRATION_FAILURE.
        """
        logger = cls.get_logger()
        service_code = (service_code or "").strip()
        receipt = (receipt or "").strip() or f"rcpt_{uuid4().hex[:20]}"

        invalid = cls.validate_required(service_code=service_code)
        if invalid:
            return invalid
        if len(receipt) > MAX_RECEIPT_LENGTH:
            return ServiceResult.failure(
                f"Receipt must not exceed {MAX_RECEIPT_LENGTH} characters",
                error_code=ErrorCode.VALIDATION_ERROR,
            )

        service = ServiceCatalogService.get_by_code(service_code)
        if service is None:
            return ServiceResult.failure(
                f"Service {service_code} not found", error_code=ErrorCode.NOT_FOUND
            )
        if not service.is_purchasable:
            return ServiceResult.failure(
                f"Service {service_code} is not available for purchase",
                error_code=ErrorCode.BUSINESS_RULE_VIOLATION,
            )

        if not (settings.RAZORPAY_KEY_ID and settings.RAZORPAY_KEY_SECRET):
            logger.error("Razorpay API keys are not configured")
            return ServiceResult.failure(
                "Payment gateway is not configured",
                error_code=ErrorCode.CONFIGURATION_ERROR,
            )

        gateway_notes = {
            **(notes or {}),
            "service_code": service.code,
            "user_id": str(user.pk),
        }
        try:
            gateway_order = cls.get_gateway_adapter().create_order(
                amount=service.amount,
                currency=service.currency,
                receipt=receipt,
                notes=gateway_notes,
            )
        except RazorpayError as e:
            logger.error(
                "Gateway rejected order creation",
                extra={
                    "service_code": service.code,
                    "user_id": str(user.pk),
                    "error": e.message,
                },
            )
            return ServiceResult.failure(
                f"Could not create order: {e.message}",
                error_code=ErrorCode.INTEGRATION_FAILURE,
            )
        except Exception:
            logger.exception(
                "Unexpected error creating gateway order",
                extra={"service_code": service.code, "user_id": str(user.pk)},
            )
            return ServiceResult.failure(
                "Order could not be created with the payment gateway",
                error_code=ErrorCode.INTEGRATION_FAILURE,
            )

        order = PaymentOrder.objects.create(
            order_id=gateway_order.id,
            user=user,
            service=service,
            amount=service.amount,
            currency=service.currency,
            receipt=receipt,
            gateway_status=gateway_order.status or "",
        )
        logger.info(
            "Checkout order created",
            extra={
                "order_id": order.order_id,
                "service_code": service.code,
                "user_id": str(user.pk),
                "amount": order.amount,
            },
        )
        return ServiceResult.success(order)

    # =========================================================================
    # Confirmation
    # =========================================================================

    @classmethod
    def verify_and_store(
        cls,
        user: User,
        order_id: str,
        payment_id: str,
        signature: str,
        request_ip: str | None = None,
        user_agent: str = "",
        now: datetime | None = None,
    ) -> ServiceResult[PaymentConfirmation]:
        """
        Verify a checkout signature and activate the purchased subscription.

        The order must have been created by create_order() for this user.

        Failure codes: VALIDATION_ERROR, CONFIGURATION_ERROR,
        AUTHENTICATION_ERROR, NOT_FOUND, BUSINESS_RULE_VIOLATION,
        TRANSIENT_STORE_ERROR.
        """
        logger = cls.get_logger()
        order_id = (order_id or "").strip()
        payment_id = (payment_id or "").strip()
        signature = (signature or "").strip()

        invalid = cls.validate_required(
            order_id=order_id, payment_id=payment_id, signature=signature
        )
        if invalid:
            return invalid

        secret = settings.RAZORPAY_KEY_SECRET
        if not secret:
            logger.error("RAZORPAY_KEY_SECRET is not configured")
            return ServiceResult.failure(
                "Payment verification is not configured",
                error_code=ErrorCode.CONFIGURATION_ERROR,
            )

        if not verify_payment_confirmation(order_id, payment_id, signature, secret):
            logger.warning(
                "Payment signature verification failed",
                extra={"order_id": order_id, "payment_id": payment_id, "user_id": str(user.pk)},
            )
            return ServiceResult.failure(
                "Invalid payment signature",
                error_code=ErrorCode.AUTHENTICATION_ERROR,
            )

        now = now or timezone.now()
        try:
            existing = Payment.objects.filter(payment_id=payment_id).first()
            if existing is not None:
                return cls._already_stored(existing)

            with transaction.atomic():
                order = (
                    PaymentOrder.objects.select_for_update()
                    .select_related("service")
                    .filter(order_id=order_id, user=user)
                    .first()
                )
                if order is None:
                    logger.warning(
                        "Confirmation for unknown order",
                        extra={"order_id": order_id, "user_id": str(user.pk)},
                    )
                    return ServiceResult.failure(
                        f"Order {order_id} not found", error_code=ErrorCode.NOT_FOUND
                    )
                if order.status != OrderStatus.CREATED:
                    logger.warning(
                        "Second payment for a paid order",
                        extra={"order_id": order_id, "payment_id": payment_id},
                    )
                    return ServiceResult.failure(
                        f"Order {order_id} is already paid",
                        error_code=ErrorCode.BUSINESS_RULE_VIOLATION,
                    )

                payment = Payment.objects.create(
                    order_id=order_id,
                    payment_id=payment_id,
                    signature=signature,
                    amount=order.amount,
                    currency=order.currency,
                    status=PaymentStatus.VERIFIED,
                    user=user,
                    user_email=user.email,
                    service_type=order.service.code,
                    verified_at=now,
                    receipt=order.receipt,
                    request_ip=request_ip or None,
                    user_agent=(user_agent or "")[:512],
                )
                order.mark_paid(now)
                order.save(update_fields=["status", "paid_at", "updated_at"])

                subscription = SubscriptionService.activate_from_payment(
                    user, payment, now, order.service
                )
                Payment.objects.filter(pk=payment.pk).update(
                    subscription_start=subscription.start_date,
                    subscription_end=subscription.end_date,
                )
                payment.subscription_start = subscription.start_date
                payment.subscription_end = subscription.end_date
        except IntegrityError:
            # Concurrent confirmation of the same payment_id won the insert
            existing = Payment.objects.filter(payment_id=payment_id).first()
            if existing is None:
                raise
            return cls._already_stored(existing)
        except (OperationalError, InterfaceError) as e:
            return cls.handle_exception(
                e, "store payment", error_code=ErrorCode.TRANSIENT_STORE_ERROR
            )

        invalidate_cached_payment(payment_id)
        logger.info(
            "Payment verified and stored",
            extra={
                "payment_id": payment_id,
                "order_id": order_id,
                "user_id": str(user.pk),
                "amount": payment.amount,
            },
        )
        return ServiceResult.success(
            PaymentConfirmation(payment=payment, subscription=subscription, created=True)
        )

    @classmethod
    def _already_stored(cls, payment: Payment) -> ServiceResult[PaymentConfirmation]:
        cls.get_logger().info(
            "Payment already stored, returning existing record",
            extra={"payment_id": payment.payment_id},
        )
        return ServiceResult.success(
            PaymentConfirmation(
                payment=payment,
                subscription=payment.subscriptions.order_by("-created_at").first(),
                created=False,
            )
        )
