"""
Custom Exception Classes for the analytics engine

Tracking entry points never let these escape: validation and persistence
failures are logged and the call returns ``None``. The admin and read
routes surface them through the JSON error envelope in
``analytics_engine.exception_handlers``.
"""

from enum import Enum
from typing import Any

from fastapi import status


class ErrorCode(str, Enum):
    """Machine-readable error codes returned in error responses."""

    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INVALID_ENTITY_REFERENCE = "VALIDATION_INVALID_ENTITY_REFERENCE"
    UNRESOLVABLE_ACTOR = "VALIDATION_UNRESOLVABLE_ACTOR"
    INVALID_METRIC = "VALIDATION_INVALID_METRIC"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    PERSISTENCE_CONFLICT = "DATABASE_PERSISTENCE_CONFLICT"
    RECORD_LOCKED = "RESOURCE_LOCKED"
    GEOLOCATION_UNAVAILABLE = "SERVICE_GEOLOCATION_UNAVAILABLE"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    AUTH_PERMISSION_DENIED = "AUTH_PERMISSION_DENIED"


class AnalyticsError(Exception):
    """Base exception class for all analytics errors"""

    error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# ============================================================================
# Validation Exceptions
# ============================================================================


class ValidationError(AnalyticsError):
    """Raised when tracking input fails validation"""

    error_code = ErrorCode.VALIDATION_FAILED

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, details=details)


class InvalidEntityReferenceError(ValidationError):
    """Raised when an entity reference has an empty or oversized type/id"""

    error_code = ErrorCode.INVALID_ENTITY_REFERENCE

    def __init__(self, entity_type: Any, entity_id: Any, reason: str):
        super().__init__(
            message=f"Invalid entity reference: {reason}",
            details={"entity_type": entity_type, "entity_id": entity_id},
        )


class UnresolvableActorError(ValidationError):
    """Raised when an event carries neither a user id nor a visitor token"""

    error_code = ErrorCode.UNRESOLVABLE_ACTOR

    def __init__(self, message: str = "Actor has neither a user id nor a visitor token"):
        super().__init__(message=message)


class InvalidMetricError(ValidationError):
    """Raised when a metric name is not a tracked counter"""

    error_code = ErrorCode.INVALID_METRIC

    def __init__(self, metric: str):
        super().__init__(message=f"Unknown metric '{metric}'", details={"metric": metric})


# ============================================================================
# Resource & Persistence Exceptions
# ============================================================================


class ResourceNotFoundError(AnalyticsError):
    """Raised when an analytic record does not exist"""

    error_code = ErrorCode.RESOURCE_NOT_FOUND

    def __init__(self, resource_type: str, resource_id: Any | None = None):
        message = f"{resource_type} not found"
        if resource_id is not None:
            message = f"{resource_type} with id '{resource_id}' not found"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class PersistenceConflictError(AnalyticsError):
    """Raised when a unique-constraint race cannot be resolved by re-fetching"""

    error_code = ErrorCode.PERSISTENCE_CONFLICT

    def __init__(self, message: str = "Concurrent write conflict", details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=status.HTTP_409_CONFLICT, details=details)


class RecordLockedError(AnalyticsError):
    """Raised when counters of a locked analytic row would change"""

    error_code = ErrorCode.RECORD_LOCKED

    def __init__(self, analytic_id: Any):
        super().__init__(
            message=f"Analytic {analytic_id} is locked",
            status_code=status.HTTP_409_CONFLICT,
            details={"analytic_id": analytic_id},
        )


class GeolocationUnavailableError(AnalyticsError):
    """Raised by a geolocation provider that failed or timed out"""

    error_code = ErrorCode.GEOLOCATION_UNAVAILABLE

    def __init__(self, provider: str, reason: str = "lookup failed"):
        super().__init__(
            message=f"Geolocation provider '{provider}' unavailable: {reason}",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"provider": provider},
        )


class AuthorizationError(AnalyticsError):
    """Raised when an admin operation is called without a valid key"""

    error_code = ErrorCode.AUTH_PERMISSION_DENIED

    def __init__(self, message: str = "You do not have permission to perform this action"):
        super().__init__(message=message, status_code=status.HTTP_403_FORBIDDEN)
