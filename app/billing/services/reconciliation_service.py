"""
Reconciliation of inbound refund webhooks.

ReconciliationEngine takes one webhook delivery (raw body + signature
header) through:

    RECEIVED -> SIGNATURE_CHECKED -> PARSED -> APPLIED | REJECTED

and returns a ReconciliationOutcome carrying the HTTP status the gateway
should get back. There is no event-id dedup store: replays converge because
RefundService.apply_webhook_event() is idempotent per (refund_id, status),
so a duplicate delivery is acknowledged with 200 and changes nothing.

Usage:
    from billing.services import ReconciliationEngine

    outcome = ReconciliationEngine.handle(request.body, signature)
    return HttpResponse(outcome.message, status=outcome.http_status)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from django.conf import settings

from core.services import BaseService

from billing.adapters import normalize_mapping
from billing.exceptions import ErrorCode
from billing.services.refund_service import RefundService
from billing.signatures import verify_webhook
from billing.state_machines import RefundStatus

if TYPE_CHECKING:
    from typing import Any


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

REFUND_EVENT_PREFIX = "refund."

# Event type -> target refund status. Other refund.* events use the entity status.
REFUND_EVENT_STATUS: dict[str, str] = {
    "refund.processed": RefundStatus.PROCESSED,
    "refund.failed": RefundStatus.FAILED,
    "refund.created": RefundStatus.PENDING,
}

# Ledger failure code -> HTTP status returned to the gateway
LEDGER_ERROR_STATUS: dict[str, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.BUSINESS_RULE_VIOLATION: 409,
    ErrorCode.TRANSIENT_STORE_ERROR: 503,
}


# =============================================================================
# Data Types
# =============================================================================


class ReconciliationStage(str, Enum):
    """Furthest stage a delivery reached."""

    RECEIVED = "received"
    SIGNATURE_CHECKED = "signature_checked"
    PARSED = "parsed"
    APPLIED = "applied"
    REJECTED = "rejected"


@dataclass
class WebhookRefundEvent:
    """Refund entity extracted from a webhook envelope."""

    event: str
    refund_id: str
    status: str | None
    amount: int | None
    payment_id: str | None
    speed_processed: str | None
    batch_id: str | None
    acquirer_data: dict[str, Any]
    notes: dict[str, Any]

    @property
    def target_status(self) -> str | None:
        return REFUND_EVENT_STATUS.get(self.event) or RefundStatus.from_gateway(self.status)

    @property
    def metadata(self) -> dict[str, Any]:
        return {
            "acquirer_data": self.acquirer_data,
            "batch_id": self.batch_id,
            "error_code": self.notes.get("error_code"),
            "error_description": self.notes.get("error_description"),
        }


@dataclass
class ReconciliationOutcome:
    """
    What happened to a delivery.

    Attributes:
        stage: Final stage (APPLIED or REJECTED, or PARSED for ignored events)
        http_status: Status to return to the sender
        message: Short body text for the response
        refund_id: Refund the event referred to, when it got that far
        error_code: Error code on rejection
        applied: False for idempotent replays and ignored events
    """

    stage: ReconciliationStage
    http_status: int
    message: str
    refund_id: str | None = None
    error_code: str | None = None
    applied: bool = False

    @property
    def accepted(self) -> bool:
        return 200 <= self.http_status < 300


class WebhookPayloadError(ValueError):
    """Raised by parse_refund_event for envelopes that cannot be used."""


# =============================================================================
# Parsing
# =============================================================================


def parse_refund_event(raw_body: bytes) -> tuple[str, WebhookRefundEvent | None]:
    """
    Parse a webhook envelope.

    Returns (event_type, refund_event). refund_event is None for events that
    are not about refunds.

    Raises:
        WebhookPayloadError: malformed JSON or missing required fields
    """
    try:
        envelope = json.loads(raw_body)
    except (TypeError, ValueError) as e:
        raise WebhookPayloadError(f"Invalid JSON: {e}") from e

    if not isinstance(envelope, dict):
        raise WebhookPayloadError("Envelope must be a JSON object")

    event_type = envelope.get("event")
    if not isinstance(event_type, str) or not event_type:
        raise WebhookPayloadError("Missing event type")

    if not event_type.startswith(REFUND_EVENT_PREFIX):
        return event_type, None

    entity = (
        normalize_mapping(
            normalize_mapping(normalize_mapping(envelope.get("payload")).get("refund")).get(
                "entity"
            )
        )
    )
    refund_id = entity.get("id")
    if not isinstance(refund_id, str) or not refund_id.strip():
        raise WebhookPayloadError("Missing payload.refund.entity.id")

    amount = entity.get("amount")
    return event_type, WebhookRefundEvent(
        event=event_type,
        refund_id=refund_id.strip(),
        status=entity.get("status"),
        amount=amount if isinstance(amount, int) else None,
        payment_id=entity.get("payment_id"),
        speed_processed=entity.get("speed_processed"),
        batch_id=entity.get("batch_id"),
        acquirer_data=normalize_mapping(entity.get("acquirer_data")),
        notes=normalize_mapping(entity.get("notes")),
    )


# =============================================================================
# Engine
# =============================================================================


class ReconciliationEngine(BaseService):
    """Authenticates, parses and applies refund webhook deliveries."""

    @classmethod
    def handle(
        cls,
        raw_body: bytes,
        signature: str | None,
        secret: str | None = None,
    ) -> ReconciliationOutcome:
        """
        Process one delivery end to end. Never raises.

        Args:
            raw_body: Exact request bytes (verified before parsing)
            signature: X-Razorpay-Signature header value
            secret: Webhook secret; defaults to settings.RAZORPAY_WEBHOOK_SECRET
        """
        logger = cls.get_logger()
        secret = secret if secret is not None else settings.RAZORPAY_WEBHOOK_SECRET

        if not verify_webhook(raw_body, signature, secret):
            logger.warning(
                "Webhook signature verification failed",
                extra={"has_signature": bool(signature), "body_size": len(raw_body or b"")},
            )
            return ReconciliationOutcome(
                stage=ReconciliationStage.REJECTED,
                http_status=401,
                message="Invalid signature",
                error_code=ErrorCode.AUTHENTICATION_ERROR,
            )

        try:
            event_type, event = parse_refund_event(raw_body)
        except WebhookPayloadError as e:
            logger.warning("Rejecting malformed webhook", extra={"error": str(e)})
            return ReconciliationOutcome(
                stage=ReconciliationStage.REJECTED,
                http_status=400,
                message=str(e),
                error_code=ErrorCode.VALIDATION_ERROR,
            )

        if event is None:
            logger.info("Ignoring non-refund webhook", extra={"event_type": event_type})
            return ReconciliationOutcome(
                stage=ReconciliationStage.PARSED,
                http_status=200,
                message="Event ignored",
            )

        try:
            return cls._apply(event)
        except Exception:
            logger.exception(
                "Unexpected error applying refund webhook",
                extra={"event_type": event.event, "refund_id": event.refund_id},
            )
            return ReconciliationOutcome(
                stage=ReconciliationStage.REJECTED,
                http_status=500,
                message="Internal error",
                refund_id=event.refund_id,
                error_code=ErrorCode.INTERNAL_ERROR,
            )

    @classmethod
    def _apply(cls, event: WebhookRefundEvent) -> ReconciliationOutcome:
        logger = cls.get_logger()
        target = event.target_status
        if target is None:
            logger.warning(
                "Refund webhook without a usable status",
                extra={"event_type": event.event, "refund_id": event.refund_id},
            )
            return ReconciliationOutcome(
                stage=ReconciliationStage.REJECTED,
                http_status=400,
                message="Unknown refund status",
                refund_id=event.refund_id,
                error_code=ErrorCode.VALIDATION_ERROR,
            )

        result = RefundService.apply_webhook_event(
            event.refund_id,
            target,
            speed_processed=event.speed_processed,
            metadata=event.metadata,
        )

        if result.success:
            applied = result.data.applied
            logger.info(
                "Refund webhook reconciled",
                extra={
                    "event_type": event.event,
                    "refund_id": event.refund_id,
                    "status": target,
                    "applied": applied,
                },
            )
            return ReconciliationOutcome(
                stage=ReconciliationStage.APPLIED,
                http_status=200,
                message="Processed" if applied else "Already processed",
                refund_id=event.refund_id,
                applied=applied,
            )

        http_status = LEDGER_ERROR_STATUS.get(result.error_code, 500)
        if result.error_code == ErrorCode.BUSINESS_RULE_VIOLATION:
            logger.error(
                "Refund webhook rejected for manual review",
                extra={
                    "event_type": event.event,
                    "refund_id": event.refund_id,
                    "error": result.error,
                },
            )
        return ReconciliationOutcome(
            stage=ReconciliationStage.REJECTED,
            http_status=http_status,
            message=result.error or "Rejected",
            refund_id=event.refund_id,
            error_code=result.error_code,
        )
