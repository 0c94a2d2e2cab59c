"""
Core Application - Infrastructure & Base Classes

Generic building blocks shared by the domain apps (accounts, billing).
No billing logic lives here.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - VersionedMixin: Integer version bumped on every save

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ValidationError: Input validation failures
    - AuthenticationError: Signature or credential checks failed
    - NotFoundError: Resource not found
    - ConflictError: State conflicts (concurrent modifications, locks)
    - ExternalServiceError: Third-party service failures

Helpers (import from core.helpers):
    - calculate_pagination: Pagination metadata calculation
    - month_start / add_months / shift_months: Calendar month arithmetic
    - get_client_ip: Client IP extraction from request

Usage:
    from core.models import BaseModel
    from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
    from core.services import BaseService, ServiceResult
    from core.exceptions import ConflictError

Note:
    Django models and model mixins are NOT imported here to avoid
    AppRegistryNotReady errors. Import them directly from their modules.
"""

# Services (no Django model dependencies)
from .services import BaseService, ServiceResult

# Exceptions (no Django dependencies)
from .exceptions import (
    AuthenticationError,
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

# Helpers (no Django model dependencies)
from .helpers import (
    add_months,
    calculate_pagination,
    get_client_ip,
    month_start,
    shift_months,
)

__all__ = [
    # Services
    "BaseService",
    "ServiceResult",
    # Exceptions
    "BaseApplicationError",
    "ValidationError",
    "AuthenticationError",
    "NotFoundError",
    "ConflictError",
    "ExternalServiceError",
    # Helpers
    "calculate_pagination",
    "month_start",
    "add_months",
    "shift_months",
    "get_client_ip",
]
