"""
Refund ledger: money returned against verified payments.

RefundService owns the invariant that, for every payment, the sum of
non-FAILED refund amounts never exceeds the payment amount. All amounts are
integers in the smallest currency unit.

Initiation follows a two-phase pattern:
    1. Short transaction with the payment row locked: recompute the
       remaining refundable amount and create a PENDING Refund
    2. Outside any transaction: ask the gateway to register the refund,
       then store its refund_id (or mark the row FAILED on rejection)

Webhook outcomes are applied with apply_webhook_event(), which is
idempotent per (refund_id, target status).

Usage:
    from billing.services import RefundService

    result = RefundService.initiate(
        payment_id="pay_29QQoUBi66xm2f",
        amount=5000,
        initiated_by="admin@example.com",
    )

    summary = RefundService.summary_for_payment("pay_29QQoUBi66xm2f").data
    summary.remaining
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.cache import cache
from django.db import InterfaceError, OperationalError, transaction
from django.db.models import F, Sum
from django.utils import timezone

from core.helpers import calculate_pagination
from core.services import BaseService, ServiceResult

from billing.adapters import RazorpayAdapter
from billing.exceptions import ErrorCode, RazorpayError
from billing.models import Payment, Refund
from billing.notifications import NotificationSender
from billing.state_machines import PaymentStatus, RefundSpeed, RefundStatus

if TYPE_CHECKING:
    from datetime import datetime
    from typing import Any

    from billing.adapters import RazorpayRefundResult


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

TRANSIENT_DB_ERRORS = (OperationalError, InterfaceError)

SYSTEM_ACTOR = "system"

# Payments are immutable once verified; the TTL only bounds staleness
PAYMENT_CACHE_PREFIX = "billing:payment:"


def payment_cache_key(payment_id: str) -> str:
    return f"{PAYMENT_CACHE_PREFIX}{payment_id}"


def invalidate_cached_payment(payment_id: str) -> None:
    cache.delete(payment_cache_key(payment_id))


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class PaymentRefundSummary:
    """
    Refund position of one payment.

    Attributes:
        original_amount: Payment amount
        total_refunded: Sum of non-FAILED refunds
        remaining: original_amount - total_refunded
        refunds: Every refund row, newest first
    """

    payment_id: str
    order_id: str
    currency: str
    original_amount: int
    total_refunded: int
    remaining: int
    refunds: list[Refund] = field(default_factory=list)

    @property
    def fully_refunded(self) -> bool:
        return self.remaining == 0


@dataclass
class RefundApplication:
    """
    Result of applying a webhook outcome to a refund.

    applied is False when the refund already had the target status.
    """

    refund: Refund
    applied: bool
    previous_status: str


@dataclass
class RefundPage:
    items: list[Refund]
    pagination: dict
    total_amount: int


@dataclass
class RefundSyncResult:
    payment_id: str
    created: list[str] = field(default_factory=list)
    attached: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)


# =============================================================================
# Refund Service
# =============================================================================


class RefundService(BaseService):
    """
    Ledger of refunds issued against payments.

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
    # Payment Lookups
    # =========================================================================

    @classmethod
    def get_payment(cls, payment_id: str) -> Payment | None:
        """Look up a payment by gateway payment id, cached for PAYMENT_CACHE_TTL_SECONDS."""
        cache_key = payment_cache_key(payment_id)
        payment = cache.get(cache_key)
        if payment is not None:
            return payment

        payment = Payment.objects.filter(payment_id=payment_id).first()
        if payment is not None:
            cache.set(cache_key, payment, timeout=settings.PAYMENT_CACHE_TTL_SECONDS)
        return payment

    @staticmethod
    def refunded_total(payment: Payment) -> int:
        """Sum of every non-FAILED refund against payment."""
        return (
            Refund.objects.filter(payment=payment)
            .exclude(status=RefundStatus.FAILED)
            .aggregate(total=Sum("amount"))["total"]
            or 0
        )

    # =========================================================================
    # Initiation
    # =========================================================================

    @classmethod
    def initiate(
        cls,
        payment_id: str,
        amount: int | None = None,
        speed: str = RefundSpeed.NORMAL,
        initiated_by: str = "",
        reason: str = "",
        notes: str = "",
        receipt: str | None = None,
    ) -> ServiceResult[Refund]:
        """
        Create a refund against a verified payment and register it with the gateway.

        Args:
            payment_id: Gateway payment id (pay_xxx)
            amount: Amount in smallest currency unit; None refunds everything
                that remains
            speed: OPTIMUM or NORMAL
            initiated_by: Admin identity recorded on the refund

        Returns:
            ServiceResult with the Refund. Failure codes: VALIDATION_ERROR,
            NOT_FOUND, BUSINESS_RULE_VIOLATION, INTEGRATION_FAILURE,
            TRANSIENT_STORE_ERROR.
        """
        logger = cls.get_logger()
        payment_id = (payment_id or "").strip()

        invalid = cls.validate_required(payment_id=payment_id)
        if invalid:
            return invalid

        if amount is not None and (
            isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0
        ):
            return ServiceResult.failure(
                "Refund amount must be a positive integer",
                error_code=ErrorCode.VALIDATION_ERROR,
            )

        refund_speed = RefundSpeed.from_gateway(speed)
        if refund_speed is None:
            return ServiceResult.failure(
                f"Unknown refund speed: {speed}",
                error_code=ErrorCode.VALIDATION_ERROR,
            )

        logger.info(
            "Starting refund initiation",
            extra={"payment_id": payment_id, "amount": amount, "initiated_by": initiated_by},
        )

        try:
            payment = cls.get_payment(payment_id)
            if payment is None:
                return ServiceResult.failure(
                    f"Payment {payment_id} not found", error_code=ErrorCode.NOT_FOUND
                )
            if payment.status != PaymentStatus.VERIFIED:
                return ServiceResult.failure(
                    "Only verified payments can be refunded",
                    error_code=ErrorCode.VALIDATION_ERROR,
                )
            if not payment.amount or payment.amount <= 0:
                return ServiceResult.failure(
                    "Payment has no refundable amount",
                    error_code=ErrorCode.VALIDATION_ERROR,
                )

            # Phase 1: reserve the amount under the payment row lock
            with transaction.atomic():
                locked = Payment.objects.select_for_update().get(pk=payment.pk)
                remaining = locked.amount - cls.refunded_total(locked)

                if remaining <= 0:
                    return ServiceResult.failure(
                        "Payment has already been fully refunded",
                        error_code=ErrorCode.BUSINESS_RULE_VIOLATION,
                    )

                refund_amount = amount if amount is not None else remaining
                if refund_amount > remaining:
                    logger.warning(
                        "Refund amount exceeds remaining refundable amount",
                        extra={
                            "payment_id": payment_id,
                            "requested": refund_amount,
                            "remaining": remaining,
                        },
                    )
                    return ServiceResult.failure(
                        f"Refund amount ({refund_amount}) exceeds remaining "
                        f"refundable amount ({remaining})",
                        error_code=ErrorCode.BUSINESS_RULE_VIOLATION,
                    )

                refund = Refund.objects.create(
                    payment=locked,
                    order_id=locked.order_id,
                    amount=refund_amount,
                    currency=locked.currency,
                    speed_requested=refund_speed,
                    user_email=locked.user_email,
                    processed_by=initiated_by,
                    reason=reason,
                    notes=notes,
                    receipt=receipt or "",
                )
        except TRANSIENT_DB_ERRORS as e:
            return cls.handle_exception(
                e, "refund initiation", error_code=ErrorCode.TRANSIENT_STORE_ERROR
            )

        # Phase 2: gateway call outside the transaction
        gateway_notes = {"initiated_by": initiated_by}
        if notes:
            gateway_notes["comment"] = notes
        try:
            gateway_refund = cls.get_gateway_adapter().create_refund(
                payment_id=payment.payment_id,
                amount=refund_amount,
                speed=RefundSpeed(refund_speed).to_gateway(),
                notes=gateway_notes,
                receipt=receipt,
            )
        except RazorpayError as e:
            logger.error(
                "Gateway rejected refund, marking FAILED",
                extra={
                    "refund_pk": str(refund.pk),
                    "payment_id": payment_id,
                    "error": e.message,
                    "is_retryable": e.is_retryable,
                },
            )
            cls._fail_refund(refund, e.gateway_code or e.error_code, e.message)
            return ServiceResult.failure(
                f"Payment gateway refused the refund: {e.message}",
                error_code=ErrorCode.INTEGRATION_FAILURE,
            )
        except Exception as e:
            # Unparseable gateway response or SDK fault; nothing reached our ledger
            logger.exception(
                "Unexpected error registering refund with gateway, marking FAILED",
                extra={"refund_pk": str(refund.pk), "payment_id": payment_id},
            )
            cls._fail_refund(refund, ErrorCode.INTERNAL_ERROR, str(e))
            return ServiceResult.failure(
                "Refund could not be registered with the payment gateway",
                error_code=ErrorCode.INTEGRATION_FAILURE,
            )

        return cls._store_gateway_refund(refund, gateway_refund)

    @classmethod
    def _store_gateway_refund(
        cls, refund: Refund, gateway_refund: RazorpayRefundResult
    ) -> ServiceResult[Refund]:
        logger = cls.get_logger()
        try:
            with transaction.atomic():
                Refund.objects.filter(pk=refund.pk, refund_id__isnull=True).update(
                    refund_id=gateway_refund.id,
                    batch_id=gateway_refund.batch_id or "",
                    acquirer_data=gateway_refund.acquirer_data,
                    version=F("version") + 1,
                    updated_at=timezone.now(),
                )
                refund.refresh_from_db()
                cls._notify_after_commit(refund)
        except TRANSIENT_DB_ERRORS:
            # The gateway holds the refund; sync_from_gateway() attaches its id later
            logger.error(
                "Failed to store gateway refund id - reconciliation needed",
                extra={"refund_pk": str(refund.pk), "refund_id": gateway_refund.id},
                exc_info=True,
            )
            return ServiceResult.success(refund)

        logger.info(
            "Refund initiated",
            extra={
                "refund_id": refund.refund_id,
                "payment_id": refund.payment.payment_id,
                "amount": refund.amount,
            },
        )
        return ServiceResult.success(refund)

    @classmethod
    def _fail_refund(cls, refund: Refund, error_code: str, error_description: str) -> None:
        """Release the reserved amount of a refund the gateway never registered."""
        with transaction.atomic():
            refund = Refund.objects.select_for_update().get(pk=refund.pk)
            refund.mark_failed(
                timezone.now(),
                error_code=error_code,
                error_description=error_description,
            )
            refund.save()

    # =========================================================================
    # Webhook Application
    # =========================================================================

    @classmethod
    def apply_webhook_event(
        cls,
        refund_id: str,
        new_status: str,
        speed_processed: str | None = None,
        metadata: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> ServiceResult[RefundApplication]:
        """
        Apply a gateway-reported refund outcome.

        Idempotent: a refund already in new_status is returned unchanged with
        applied=False and no notification. Moving a PROCESSED or FAILED refund
        anywhere else is refused as BUSINESS_RULE_VIOLATION.

        Args:
            refund_id: Gateway refund id (rfnd_xxx)
            new_status: Target RefundStatus
            speed_processed: Gateway speed ("instant", "normal", ...)
            metadata: acquirer_data, batch_id, error_code, error_description
        """
        logger = cls.get_logger()
        metadata = metadata or {}
        refund_id = (refund_id or "").strip()

        if not refund_id:
            return ServiceResult.failure(
                "refund_id is required", error_code=ErrorCode.VALIDATION_ERROR
            )
        if new_status not in RefundStatus.values:
            return ServiceResult.failure(
                f"Unknown refund status: {new_status}",
                error_code=ErrorCode.VALIDATION_ERROR,
            )

        now = now or timezone.now()
        try:
            with transaction.atomic():
                refund = (
                    Refund.objects.select_for_update()
                    .filter(refund_id=refund_id)
                    .first()
                )
                if refund is None:
                    logger.warning(
                        "Webhook for unknown refund", extra={"refund_id": refund_id}
                    )
                    return ServiceResult.failure(
                        f"Refund {refund_id} not found", error_code=ErrorCode.NOT_FOUND
                    )

                previous = refund.status
                if previous == new_status:
                    logger.info(
                        "Refund already in target status, nothing to do",
                        extra={"refund_id": refund_id, "status": previous},
                    )
                    return ServiceResult.success(
                        RefundApplication(refund=refund, applied=False, previous_status=previous)
                    )

                if previous in RefundStatus.terminal() or new_status == RefundStatus.PENDING:
                    logger.error(
                        "Refusing refund status reversion",
                        extra={
                            "refund_id": refund_id,
                            "current_status": previous,
                            "requested_status": new_status,
                        },
                    )
                    return ServiceResult.failure(
                        f"Refund {refund_id} is {previous}; cannot move to {new_status}",
                        error_code=ErrorCode.BUSINESS_RULE_VIOLATION,
                    )

                cls._apply_gateway_metadata(refund, speed_processed, metadata)
                if new_status == RefundStatus.PROCESSED:
                    refund.mark_processed(now)
                else:
                    refund.mark_failed(
                        now,
                        error_code=metadata.get("error_code") or "",
                        error_description=metadata.get("error_description") or "",
                    )
                refund.save()
                cls._notify_after_commit(refund)
        except TRANSIENT_DB_ERRORS as e:
            return cls.handle_exception(
                e, "apply refund webhook", error_code=ErrorCode.TRANSIENT_STORE_ERROR
            )

        logger.info(
            "Refund status updated",
            extra={"refund_id": refund_id, "from": previous, "to": new_status},
        )
        return ServiceResult.success(
            RefundApplication(refund=refund, applied=True, previous_status=previous)
        )

    @staticmethod
    def _apply_gateway_metadata(
        refund: Refund, speed_processed: str | None, metadata: dict[str, Any]
    ) -> None:
        speed = RefundSpeed.from_gateway(speed_processed)
        if speed:
            refund.speed_processed = speed
        if metadata.get("acquirer_data"):
            refund.acquirer_data = metadata["acquirer_data"]
        if metadata.get("batch_id"):
            refund.batch_id = metadata["batch_id"]

    @staticmethod
    def _notify_after_commit(refund: Refund) -> None:
        args = (
            refund.user_email,
            refund.refund_id,
            refund.amount,
            refund.payment.payment_id,
            refund.status,
            refund.currency,
        )
        transaction.on_commit(lambda: NotificationSender.notify_refund_status(*args))

    # =========================================================================
    # Reads
    # =========================================================================

    @classmethod
    def summary_for_payment(cls, payment_id: str) -> ServiceResult[PaymentRefundSummary]:
        try:
            payment = cls.get_payment((payment_id or "").strip())
            if payment is None:
                return ServiceResult.failure(
                    f"Payment {payment_id} not found", error_code=ErrorCode.NOT_FOUND
                )
            refunds = list(payment.refunds.order_by("-created_at"))
        except TRANSIENT_DB_ERRORS as e:
            return cls.handle_exception(
                e, "refund summary", error_code=ErrorCode.TRANSIENT_STORE_ERROR
            )

        original = payment.amount or 0
        refunded = sum(r.amount for r in refunds if r.counts_against_payment)
        return ServiceResult.success(
            PaymentRefundSummary(
                payment_id=payment.payment_id,
                order_id=payment.order_id,
                currency=payment.currency,
                original_amount=original,
                total_refunded=refunded,
                remaining=max(0, original - refunded),
                refunds=refunds,
            )
        )

    @classmethod
    def get_refund(cls, refund_id: str) -> ServiceResult[Refund]:
        refund = (
            Refund.objects.select_related("payment")
            .filter(refund_id=(refund_id or "").strip())
            .first()
        )
        if refund is None:
            return ServiceResult.failure(
                f"Refund {refund_id} not found", error_code=ErrorCode.NOT_FOUND
            )
        return ServiceResult.success(refund)

    @classmethod
    def list_refunds(
        cls,
        status: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> ServiceResult[RefundPage]:
        """Admin listing, newest first, filtered by status and created_at range."""
        queryset = Refund.objects.select_related("payment")
        if status:
            if status not in RefundStatus.values:
                return ServiceResult.failure(
                    f"Unknown refund status: {status}",
                    error_code=ErrorCode.VALIDATION_ERROR,
                )
            queryset = queryset.filter(status=status)
        if start:
            queryset = queryset.filter(created_at__gte=start)
        if end:
            queryset = queryset.filter(created_at__lte=end)

        total_amount = queryset.aggregate(total=Sum("amount"))["total"] or 0
        pagination = calculate_pagination(queryset.count(), page, page_size)
        offset = pagination["offset"]
        items = list(queryset.order_by("-created_at")[offset : offset + page_size])
        return ServiceResult.success(
            RefundPage(items=items, pagination=pagination, total_amount=total_amount)
        )

    # =========================================================================
    # Gateway Sync
    # =========================================================================

    @classmethod
    def sync_from_gateway(cls, payment_id: str) -> ServiceResult[RefundSyncResult]:
        """
        Pull the gateway's refund list for a payment and reconcile local rows.

        - Known refund ids with a newer terminal status are applied as webhooks
        - Unknown ids first try to attach to a local PENDING row without a
          refund_id (same amount); otherwise a row is created with
          processed_by="system"
        """
        logger = cls.get_logger()
        payment = cls.get_payment((payment_id or "").strip())
        if payment is None:
            return ServiceResult.failure(
                f"Payment {payment_id} not found", error_code=ErrorCode.NOT_FOUND
            )

        try:
            gateway_refunds = cls.get_gateway_adapter().fetch_refunds(payment.payment_id)
        except RazorpayError as e:
            logger.error(
                "Failed to fetch refunds from gateway",
                extra={"payment_id": payment.payment_id, "error": e.message},
            )
            return ServiceResult.failure(
                f"Could not fetch refunds: {e.message}",
                error_code=ErrorCode.INTEGRATION_FAILURE,
            )

        result = RefundSyncResult(payment_id=payment.payment_id)
        try:
            for remote in gateway_refunds:
                cls._sync_one(payment, remote, result)
        except TRANSIENT_DB_ERRORS as e:
            return cls.handle_exception(
                e, "refund sync", error_code=ErrorCode.TRANSIENT_STORE_ERROR
            )

        logger.info(
            "Refund sync finished",
            extra={
                "payment_id": payment.payment_id,
                "created": len(result.created),
                "attached": len(result.attached),
                "updated": len(result.updated),
            },
        )
        return ServiceResult.success(result)

    @classmethod
    def _sync_one(
        cls, payment: Payment, remote: RazorpayRefundResult, result: RefundSyncResult
    ) -> None:
        status = RefundStatus.from_gateway(remote.status) or RefundStatus.PENDING

        with transaction.atomic():
            exists = Refund.objects.filter(refund_id=remote.id).exists()
            if not exists:
                orphan = (
                    Refund.objects.select_for_update()
                    .filter(
                        payment=payment,
                        refund_id__isnull=True,
                        status=RefundStatus.PENDING,
                        amount=remote.amount,
                    )
                    .order_by("created_at")
                    .first()
                )
                if orphan is not None:
                    orphan.refund_id = remote.id
                    orphan.save(update_fields=["refund_id", "updated_at"])
                    result.attached.append(remote.id)
                else:
                    cls._create_from_gateway(payment, remote, status)
                    result.created.append(remote.id)
                    return

        if status in RefundStatus.terminal():
            applied = cls.apply_webhook_event(
                remote.id,
                status,
                speed_processed=remote.speed_processed,
                metadata={"acquirer_data": remote.acquirer_data, "batch_id": remote.batch_id},
            )
            if applied.success and applied.data.applied:
                result.updated.append(remote.id)

    @staticmethod
    def _create_from_gateway(
        payment: Payment, remote: RazorpayRefundResult, status: str
    ) -> Refund:
        now = timezone.now()
        return Refund.objects.create(
            refund_id=remote.id,
            payment=payment,
            order_id=payment.order_id,
            amount=remote.amount,
            currency=remote.currency or payment.currency,
            status=status,
            speed_requested=RefundSpeed.from_gateway(remote.speed_requested)
            or RefundSpeed.NORMAL,
            speed_processed=RefundSpeed.from_gateway(remote.speed_processed),
            user_email=payment.user_email,
            processed_by=SYSTEM_ACTOR,
            receipt=remote.receipt or "",
            batch_id=remote.batch_id or "",
            acquirer_data=remote.acquirer_data,
            processed_at=now if status == RefundStatus.PROCESSED else None,
            failed_at=now if status == RefundStatus.FAILED else None,
        )
