"""
Razorpay API adapter for order and refund operations.

All gateway calls go through RazorpayAdapter so errors, logging and
response parsing are handled in one place. The adapter is stateless apart
from a lazily built SDK client.

Configuration (via settings):
- RAZORPAY_KEY_ID: API key id
- RAZORPAY_KEY_SECRET: API key secret (also signs checkout confirmations)

Usage:
    from billing.adapters import RazorpayAdapter

    result = RazorpayAdapter.create_refund(
        payment_id="pay_29QQoUBi66xm2f",
        amount=5000,
        speed="normal",
        notes={"comment": "Duplicate charge"},
        receipt="refund_rcpt_11",
    )
    result.id  # "rfnd_FP8QHiV938haTz"
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

import razorpay
from razorpay.errors import BadRequestError, GatewayError, ServerError
import requests
from django.conf import settings

from billing.exceptions import (
    RazorpayBadRequestError,
    RazorpayConnectionError,
    RazorpayError,
    RazorpayServerError,
)


# =============================================================================
# Data Types
# =============================================================================


def normalize_mapping(value: Any) -> dict[str, Any]:
    """
    Coerce a gateway "object" field into a dict.

    The gateway serializes empty maps as ``[]`` (and sometimes ``null``) for
    ``notes`` and ``acquirer_data``.
    """
    if isinstance(value, dict):
        return value
    return {}


@dataclass
class RazorpayRefundResult:
    """
    Refund entity as reported by the gateway.

    Attributes:
        id: Refund ID (rfnd_xxx)
        payment_id: Source payment ID (pay_xxx)
        amount: Amount in smallest currency unit
        currency: Currency code
        status: pending / processed / failed
        speed_requested: optimum / normal
        speed_processed: instant / normal (None until processed)
        receipt: Merchant receipt reference
        batch_id: Settlement batch ID
        notes: Free-form notes
        acquirer_data: Bank references (arn, rrn)
        created_at: Unix timestamp
        raw_response: Full response dict (for debugging)
    """

    id: str
    payment_id: str
    amount: int
    currency: str
    status: str
    speed_requested: str | None = None
    speed_processed: str | None = None
    receipt: str | None = None
    batch_id: str | None = None
    notes: dict[str, Any] = field(default_factory=dict)
    acquirer_data: dict[str, Any] = field(default_factory=dict)
    created_at: int | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_entity(cls, entity: dict[str, Any]) -> RazorpayRefundResult:
        return cls(
            id=entity["id"],
            payment_id=entity.get("payment_id") or "",
            amount=int(entity.get("amount") or 0),
            currency=entity.get("currency") or "INR",
            status=entity.get("status") or "",
            speed_requested=entity.get("speed_requested"),
            speed_processed=entity.get("speed_processed"),
            receipt=entity.get("receipt"),
            batch_id=entity.get("batch_id"),
            notes=normalize_mapping(entity.get("notes")),
            acquirer_data=normalize_mapping(entity.get("acquirer_data")),
            created_at=entity.get("created_at"),
            raw_response=entity,
        )


@dataclass
class RazorpayOrderResult:
    """
    Order entity as reported by the gateway.

    Attributes:
        id: Order ID (order_xxx)
        amount: Amount in smallest currency unit
        currency: Currency code
        receipt: Merchant receipt reference
        status: created / attempted / paid
        created_at: Unix timestamp
    """

    id: str
    amount: int
    currency: str
    receipt: str | None = None
    status: str = ""
    amount_paid: int = 0
    amount_due: int = 0
    notes: dict[str, Any] = field(default_factory=dict)
    created_at: int | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_entity(cls, entity: dict[str, Any]) -> RazorpayOrderResult:
        return cls(
            id=entity["id"],
            amount=int(entity["amount"]),
            currency=entity.get("currency") or "INR",
            receipt=entity.get("receipt"),
            status=entity.get("status") or "",
            amount_paid=int(entity.get("amount_paid") or 0),
            amount_due=int(entity.get("amount_due") or 0),
            notes=normalize_mapping(entity.get("notes")),
            created_at=entity.get("created_at"),
            raw_response=entity,
        )


# =============================================================================
# Adapter
# =============================================================================


class RazorpayAdapter:
    """
    Adapter for Razorpay order and refund APIs.

    All methods are classmethods. The SDK client is built on first use from
    settings and cached on the class; reset_client() drops it (tests,
    credential rotation).
    """

    _client: razorpay.Client | None = None

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    def get_client(cls) -> razorpay.Client:
        if cls._client is None:
            cls._client = razorpay.Client(
                auth=(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET)
            )
        return cls._client

    @classmethod
    def reset_client(cls) -> None:
        cls._client = None

    # =========================================================================
    # Orders
    # =========================================================================

    @classmethod
    def create_order(
        cls,
        amount: int,
        currency: str,
        receipt: str,
        notes: dict[str, str] | None = None,
    ) -> RazorpayOrderResult:
        """
        Create a checkout order for ``amount``.

        The checkout collects payment against the returned order id; the
        confirmation signature covers ``order_id|payment_id``.

        Raises:
            RazorpayBadRequestError: Gateway refused the order
            RazorpayServerError: Gateway 5xx
            RazorpayConnectionError: Network failure
        """
        log_context = {
            "operation": "create_order",
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
        }
        data = {
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        entity = cls._call(log_context, lambda client: client.order.create(data))
        return RazorpayOrderResult.from_entity(entity)

    # =========================================================================
    # Refunds
    # =========================================================================

    @classmethod
    def create_refund(
        cls,
        payment_id: str,
        amount: int,
        speed: str = "normal",
        notes: dict[str, str] | None = None,
        receipt: str | None = None,
    ) -> RazorpayRefundResult:
        """
        Ask the gateway to refund ``amount`` of a captured payment.

        Raises:
            RazorpayBadRequestError: Gateway refused the refund
            RazorpayServerError: Gateway 5xx
            RazorpayConnectionError: Network failure
        """
        log_context = {
            "operation": "create_refund",
            "payment_id": payment_id,
            "amount": amount,
            "speed": speed,
        }
        data: dict[str, Any] = {
            "amount": amount,
            "speed": speed,
            "notes": notes or {},
        }
        if receipt:
            data["receipt"] = receipt

        entity = cls._call(
            log_context, lambda client: client.payment.refund(payment_id, data)
        )
        return RazorpayRefundResult.from_entity(entity)

    @classmethod
    def fetch_refunds(cls, payment_id: str) -> list[RazorpayRefundResult]:
        """List every refund the gateway holds for a payment."""
        log_context = {"operation": "fetch_refunds", "payment_id": payment_id}
        response = cls._call(
            log_context,
            lambda client: client.payment.fetch_multiple_refund(payment_id, {}),
        )
        return [
            RazorpayRefundResult.from_entity(item)
            for item in response.get("items", [])
        ]

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _call(cls, log_context: dict[str, Any], operation) -> dict[str, Any]:
        logger = cls.get_logger()
        start_time = time.time()
        logger.info("Starting Razorpay operation", extra=log_context)

        try:
            response = operation(cls.get_client())
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_razorpay_error(e, log_context, duration_ms)
            raise

        logger.info(
            "Razorpay operation completed",
            extra={**log_context, "duration_ms": (time.time() - start_time) * 1000},
        )
        return response

    @classmethod
    def _handle_razorpay_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate SDK and transport exceptions into billing exceptions.

        Returns without raising for errors it does not recognise, so the
        caller re-raises the original.
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, RazorpayError):
            raise error

        if isinstance(error, BadRequestError):
            logger.warning("Razorpay rejected request", extra=log_context)
            raise RazorpayBadRequestError(
                str(error),
                gateway_code=getattr(error, "code", None) or "BAD_REQUEST_ERROR",
            ) from error

        if isinstance(error, (ServerError, GatewayError)):
            logger.error("Razorpay server error", extra=log_context, exc_info=True)
            raise RazorpayServerError(
                str(error) or "Razorpay is unavailable",
                gateway_code=getattr(error, "code", None) or "SERVER_ERROR",
            ) from error

        if isinstance(error, requests.RequestException):
            logger.error("Connection error to Razorpay", extra=log_context, exc_info=True)
            raise RazorpayConnectionError(
                "Could not reach Razorpay",
                details={"reason": str(error)},
            ) from error

        logger.exception("Unexpected error from Razorpay client", extra=log_context)
