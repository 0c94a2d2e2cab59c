"""
Billing error codes and exceptions.

Services return ServiceResult failures tagged with an ErrorCode for every
expected outcome. Exceptions are raised only from the gateway adapter and
the concurrency helpers, and services translate them at their boundary.

Exception Hierarchy:
    BillingError (base for billing domain)
    └── RazorpayError - Base for all gateway errors
        ├── RazorpayBadRequestError - Rejected request (permanent)
        ├── RazorpayServerError - Gateway 5xx (transient, retry)
        └── RazorpayConnectionError - Network failure/timeout (transient, retry)

    StaleRecordError - Conditional write lost a race (inherits ConflictError)
    LockAcquisitionError - Distributed lock busy (inherits ConflictError)

Usage:
    from billing.exceptions import ErrorCode, RazorpayError

    try:
        RazorpayAdapter.create_refund(...)
    except RazorpayError as e:
        return ServiceResult.failure(e.message, ErrorCode.INTEGRATION_FAILURE)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError

if TYPE_CHECKING:
    from typing import Any


class ErrorCode:
    """
    Machine-readable codes carried by ServiceResult failures.

    HTTP mapping lives in billing.views.ERROR_STATUS.
    """

    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    NO_ACTIVE_SUBSCRIPTION = "NO_ACTIVE_SUBSCRIPTION"
    NO_SUBSCRIPTION = "NO_SUBSCRIPTION"
    NOT_FOUND = "NOT_FOUND"
    INTEGRATION_FAILURE = "INTEGRATION_FAILURE"
    TRANSIENT_STORE_ERROR = "TRANSIENT_STORE_ERROR"
    CONFLICT = "CONFLICT"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# =============================================================================
# Billing Domain Exceptions
# =============================================================================


class BillingError(BaseApplicationError):
    """Base exception for billing operations."""

    default_error_code: str = "BILLING_ERROR"


class RazorpayError(BillingError):
    """
    Base exception for gateway failures.

    Attributes:
        gateway_code: Error code reported by the gateway, if any
        is_retryable: Whether the same call may succeed later
    """

    default_error_code: str = ErrorCode.INTEGRATION_FAILURE
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        gateway_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if gateway_code:
            details["gateway_code"] = gateway_code
        super().__init__(message, error_code=error_code, details=details)
        self.gateway_code = gateway_code


class RazorpayBadRequestError(RazorpayError):
    """
    The gateway rejected the request.

    Permanent: e.g. refund amount above the captured amount, payment not
    captured, unknown payment id. Retrying with the same input never works.
    """

    is_retryable: bool = False


class RazorpayServerError(RazorpayError):
    """Gateway returned a 5xx. Transient."""

    is_retryable: bool = True


class RazorpayConnectionError(RazorpayError):
    """
    Network failure or timeout talking to the gateway. Transient.

    The request may have reached the gateway; a later sync_from_gateway()
    reconciles any refund created on its side.
    """

    is_retryable: bool = True


# =============================================================================
# Concurrency Control Exceptions
# =============================================================================


class StaleRecordError(ConflictError):
    """
    A conditional write matched no rows.

    The row changed between read and write (another request or a sweep got
    there first). The caller should re-read or give up.
    """

    default_error_code: str = ErrorCode.CONFLICT


class LockAcquisitionError(ConflictError):
    """Raised when a distributed lock is already held by someone else."""

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class TransientSweepError(BillingError):
    """Raised by a scheduled sweep that hit a transient database error; the task retries."""

    default_error_code: str = "TRANSIENT_STORE_ERROR"
