"""
Service layer primitives shared by every app.

Services hold the business logic; views translate HTTP, models hold data.
Expected outcomes (a refund that exceeds the remaining balance, a
cancellation with nothing to cancel) are returned as a ServiceResult.
Exceptions are reserved for faults nobody planned for.

Usage:
    from core.services import BaseService, ServiceResult

    class RefundService(BaseService):
        @classmethod
        def get_refund(cls, refund_id: str) -> ServiceResult[Refund]:
            refund = Refund.objects.filter(refund_id=refund_id).first()
            if refund is None:
                return ServiceResult.failure("Refund not found", "NOT_FOUND")
            return ServiceResult.success(refund)

    result = RefundService.get_refund("rfnd_123")
    if not result:
        return Response(result.to_response(), status=404)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from typing import Any

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Tagged success/failure value returned by service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Payload on success
        error: Human-readable message on failure
        error_code: Machine-readable code (see billing.exceptions.ErrorCode)
        errors: Optional field-level messages for validation failures
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def ok(cls, data: T) -> ServiceResult[T]:
        """Alias for success()."""
        return cls(success=True, data=data)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        """
        Build a failed result.

        Example:
            return ServiceResult.failure(
                "Refund amount exceeds remaining refundable amount",
                error_code="BUSINESS_RULE_VIOLATION",
            )
        """
        return cls(success=False, error=error, error_code=error_code, errors=errors)

    @classmethod
    def from_exception(
        cls, exc: Exception, error_code: str | None = None
    ) -> ServiceResult[T]:
        """
        Build a failed result from a caught exception.

        Application errors carry their own error_code; anything else falls
        back to the exception class name.
        """
        code = error_code or getattr(exc, "error_code", None)
        message = getattr(exc, "message", None) or str(exc)
        return cls(
            success=False,
            error=message,
            error_code=code or exc.__class__.__name__.upper(),
        )

    def to_response(self) -> dict[str, Any]:
        """Convert to the JSON envelope returned by the API views."""
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {"success": False, "error": self.error}
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        return response

    def map(self, func: Callable[[T], Any]) -> ServiceResult:
        """Apply func to the payload of a successful result."""
        if self.success and self.data is not None:
            return ServiceResult.success(func(self.data))
        return self

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for stateless services.

    Services expose classmethods only. Each one gets a logger named after
    the concrete class so log output can be filtered per service.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """Run the enclosed block in a database transaction."""
        with transaction.atomic():
            yield

    @classmethod
    def handle_exception(
        cls,
        exc: Exception,
        context: str = "",
        error_code: str | None = None,
        log_level: int = logging.ERROR,
    ) -> ServiceResult:
        """
        Log an unexpected exception with its traceback and wrap it.

        Example:
            except DatabaseError as e:
                return cls.handle_exception(
                    e, "refund lookup", error_code="TRANSIENT_STORE_ERROR"
                )
        """
        message = f"{context}: {exc}" if context else str(exc)
        cls.get_logger().log(log_level, message, exc_info=True)
        return ServiceResult.from_exception(exc, error_code)

    @classmethod
    def validate_required(cls, **kwargs: Any) -> ServiceResult | None:
        """
        Return a VALIDATION_ERROR result when any argument is None or blank.

        Returns None when every field is present.
        """
        errors = {}
        for field_name, value in kwargs.items():
            if value is None or (isinstance(value, str) and not value.strip()):
                errors[field_name] = ["This field is required."]

        if errors:
            return ServiceResult.failure(
                f"Missing required fields: {', '.join(errors)}",
                error_code="VALIDATION_ERROR",
                errors=errors,
            )
        return None
