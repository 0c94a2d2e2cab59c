"""
Base exception classes for application-wide error handling.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Input validation failures
    ├── AuthenticationError - Signature or credential checks failed
    ├── NotFoundError - Resource not found
    ├── ConflictError - State conflicts (concurrent modifications, locks)
    └── ExternalServiceError - Third-party service failures

These are for faults raised out of infrastructure code. Services report
expected business outcomes through core.services.ServiceResult instead.

Usage:
    from core.exceptions import NotFoundError

    raise NotFoundError(
        f"Payment {payment_id} not found",
        details={"payment_id": payment_id},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Refund not found",
                "error_code": "NOT_FOUND",
                "details": {"refund_id": "rfnd_123"}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """Raised when input is malformed or incomplete."""

    default_error_code: str = "VALIDATION_ERROR"


class AuthenticationError(BaseApplicationError):
    """
    Raised when a caller cannot prove who it is.

    For webhook deliveries this means the HMAC signature did not match the
    raw body. Map to HTTP 401.
    """

    default_error_code: str = "AUTHENTICATION_ERROR"


class NotFoundError(BaseApplicationError):
    """Raised when a requested resource is not found."""

    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    HTTP 409 Conflict is the appropriate status for these errors.
    """

    default_error_code: str = "CONFLICT"


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Log the original error for debugging but don't expose internal details
    to clients. HTTP 502 Bad Gateway is appropriate.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
