"""Booking engine primitives: errors, saga state and provider locks."""

from app.booking.errors import (
    AllocationExhaustedError,
    BookingError,
    CompensationFailure,
    ConflictError,
    ConflictingInterval,
    InvalidStateError,
    NoEligibleResourceError,
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    ValidationError,
)
from app.booking.locks import provider_lock
from app.booking.saga import BookingState, Saga

__all__ = [
    "AllocationExhaustedError",
    "BookingError",
    "BookingState",
    "CompensationFailure",
    "ConflictError",
    "ConflictingInterval",
    "InvalidStateError",
    "NoEligibleResourceError",
    "NotFoundError",
    "PermissionDeniedError",
    "PersistenceError",
    "Saga",
    "ValidationError",
    "provider_lock",
]
