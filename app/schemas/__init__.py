"""Pydantic schemas for request/response validation."""

from app.schemas.appointment import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentList,
    AppointmentRead,
    AppointmentReassign,
    AppointmentStatusUpdate,
    AppointmentUpdate,
    ProviderAvailability,
)
from app.schemas.booking import (
    BookingAcceptRequest,
    BookingAcceptResponse,
    BookingRejectRequest,
    BookingRequestCreate,
    BookingRequestList,
    BookingRequestRead,
    BookingRequestStatusRead,
)

__all__ = [
    "AppointmentCancel",
    "AppointmentCreate",
    "AppointmentList",
    "AppointmentRead",
    "AppointmentReassign",
    "AppointmentStatusUpdate",
    "AppointmentUpdate",
    "ProviderAvailability",
    "BookingAcceptRequest",
    "BookingAcceptResponse",
    "BookingRejectRequest",
    "BookingRequestCreate",
    "BookingRequestList",
    "BookingRequestRead",
    "BookingRequestStatusRead",
]
