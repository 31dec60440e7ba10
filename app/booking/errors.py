"""Booking error taxonomy.

Every error the booking engine raises derives from ``BookingError`` and
carries a stable machine-readable ``code`` plus the HTTP status the API
layer maps it to.
"""

from dataclasses import dataclass
from datetime import time


@dataclass(frozen=True)
class ConflictingInterval:
    """An existing appointment that overlaps a proposed slot.

    Attributes:
        appointment_id: Id of the overlapping appointment
        start_time: Its start time
        end_time: Its (exclusive) end time
    """

    appointment_id: str
    start_time: time
    end_time: time

    def to_dict(self) -> dict[str, str]:
        return {
            "appointment_id": self.appointment_id,
            "start_time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M"),
        }


class BookingError(Exception):
    """Base class for booking engine errors."""

    status_code = 500
    default_code = "BOOKING_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_dict(self) -> dict:
        """Structured error body for API responses."""
        return {"detail": self.message, "code": self.code}


class ValidationError(BookingError):
    """Raised when a payload fails field, format or time validation."""

    status_code = 400
    default_code = "VALIDATION_ERROR"


class InvalidStateError(BookingError):
    """Raised when a booking request is no longer pending."""

    status_code = 400
    default_code = "INVALID_STATE"


class NotFoundError(BookingError):
    """Raised when a referenced record does not exist."""

    status_code = 404
    default_code = "NOT_FOUND"


class PermissionDeniedError(BookingError):
    """Raised when the actor lacks the required permission."""

    status_code = 403
    default_code = "PERMISSION_DENIED"


class ConflictError(BookingError):
    """Raised when a proposed slot overlaps an existing appointment."""

    status_code = 409
    default_code = "APPOINTMENT_CONFLICT"

    def __init__(
        self,
        message: str,
        conflict: ConflictingInterval,
        code: str | None = None,
    ) -> None:
        super().__init__(message, code)
        self.conflict = conflict

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["conflict"] = self.conflict.to_dict()
        return body


class NoEligibleResourceError(BookingError):
    """Raised when no active provider holds an eligible role."""

    status_code = 400
    default_code = "NO_PROVIDER_AVAILABLE"


class AllocationExhaustedError(BookingError):
    """Raised when patient code allocation keeps colliding.

    Retryable: the caller should try the whole operation again.
    """

    status_code = 503
    default_code = "ID_ALLOCATION_EXHAUSTED"
    retry_after_seconds = 1


class PersistenceError(BookingError):
    """Raised when the record store rejects or fails a read or write."""

    status_code = 500
    default_code = "PERSISTENCE_ERROR"


class CompensationFailure(BookingError):
    """A compensating action failed after an earlier step failed.

    Logged for manual cleanup, never returned to the caller; the
    original error is what the caller sees.
    """

    default_code = "COMPENSATION_FAILED"

    def __init__(
        self,
        message: str,
        original: BaseException,
        entity_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.original = original
        self.entity_id = entity_id
