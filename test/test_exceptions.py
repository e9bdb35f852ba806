"""
Tests for custom exception classes and the JSON error envelope

Tests exception initialization, messages, status codes, and details.
"""

from fastapi import status

from analytics_engine.exceptions import (
    AnalyticsError,
    AuthorizationError,
    ErrorCode,
    GeolocationUnavailableError,
    InvalidEntityReferenceError,
    InvalidMetricError,
    PersistenceConflictError,
    RecordLockedError,
    ResourceNotFoundError,
    UnresolvableActorError,
    ValidationError,
)


class TestAnalyticsError:
    """Test base AnalyticsError class"""

    def test_default(self):
        """Test AnalyticsError with default values"""
        exc = AnalyticsError("Test error")
        assert str(exc) == "Test error"
        assert exc.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert exc.details == {}
        assert exc.error_code is ErrorCode.UNKNOWN_ERROR


class TestValidationExceptions:
    """Test tracking input errors"""

    def test_invalid_entity_reference(self):
        exc = InvalidEntityReferenceError("", "42", "entity_type must not be empty")
        assert isinstance(exc, ValidationError)
        assert exc.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert exc.message == "Invalid entity reference: entity_type must not be empty"
        assert exc.details == {"entity_type": "", "entity_id": "42"}
        assert exc.error_code is ErrorCode.INVALID_ENTITY_REFERENCE

    def test_unresolvable_actor(self):
        exc = UnresolvableActorError()
        assert "visitor token" in exc.message
        assert exc.error_code.value == "VALIDATION_UNRESOLVABLE_ACTOR"

    def test_invalid_metric(self):
        exc = InvalidMetricError("mood")
        assert exc.message == "Unknown metric 'mood'"
        assert exc.details == {"metric": "mood"}


class TestServiceExceptions:
    """Test persistence, lookup and authorization errors"""

    def test_resource_not_found_with_id(self):
        exc = ResourceNotFoundError("Analytic", 7)
        assert exc.status_code == status.HTTP_404_NOT_FOUND
        assert exc.message == "Analytic with id '7' not found"

    def test_resource_not_found_without_id(self):
        assert ResourceNotFoundError("Analytic").message == "Analytic not found"

    def test_persistence_conflict(self):
        exc = PersistenceConflictError(details={"entity": "article:1"})
        assert exc.status_code == status.HTTP_409_CONFLICT
        assert exc.details == {"entity": "article:1"}

    def test_record_locked(self):
        exc = RecordLockedError(7)
        assert exc.status_code == status.HTTP_409_CONFLICT
        assert exc.error_code is ErrorCode.RECORD_LOCKED
        assert exc.details == {"analytic_id": 7}

    def test_geolocation_unavailable(self):
        exc = GeolocationUnavailableError("ip-api", "timeout")
        assert exc.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert exc.message == "Geolocation provider 'ip-api' unavailable: timeout"

    def test_authorization_error(self):
        exc = AuthorizationError()
        assert exc.status_code == status.HTTP_403_FORBIDDEN
        assert exc.error_code is ErrorCode.AUTH_PERMISSION_DENIED
