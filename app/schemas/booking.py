"""Pydantic schemas for booking requests.

Contact and time fields are plain optional strings here: the booking
validators check them and answer with a 400 and a stable error code,
rather than the generic 422 a schema failure would produce.
"""

from datetime import date, datetime, time
from uuid import UUID

from pydantic import BaseModel, Field


# =============================================================================
# Submission
# =============================================================================


class BookingRequestCreate(BaseModel):
    """Schema for submitting a booking request (public form or staff)."""

    full_name: str | None = None
    mobile: str | None = None
    gender: str | None = None
    email: str | None = None
    date_of_birth: date | None = None
    appointment_date: str | None = Field(None, description="YYYY-MM-DD")
    start_time: str | None = Field(None, description="HH:MM")
    end_time: str | None = Field(None, description="HH:MM")
    appointment_type: str = Field(
        default="consult",
        description="consult, follow-up, surgery, refraction, other",
    )
    provider_id: UUID | None = None
    reason: str | None = None
    notes: str | None = None


class BookingRequestRead(BaseModel):
    """Schema for reading a booking request."""

    id: str
    full_name: str
    email: str | None
    mobile: str
    gender: str
    date_of_birth: date | None
    appointment_date: date
    start_time: time
    end_time: time
    appointment_type: str
    provider_id: str | None
    reason: str | None
    notes: str | None
    source: str
    status: str
    processed_by: str | None
    processed_at: datetime | None
    rejection_reason: str | None
    patient_id: str | None
    appointment_id: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingRequestStatusRead(BaseModel):
    """Public view of a booking request; no personal details."""

    id: str
    status: str
    appointment_date: date
    start_time: time
    end_time: time

    model_config = {"from_attributes": True}


class BookingRequestList(BaseModel):
    """Paginated list of booking requests."""

    items: list[BookingRequestRead]
    total: int
    page: int
    limit: int
    pages: int


# =============================================================================
# Processing
# =============================================================================


class BookingAcceptRequest(BaseModel):
    """Patient details supplied by staff when accepting a request.

    Any field left out falls back to what the applicant submitted.
    """

    full_name: str | None = None
    email: str | None = None
    mobile: str | None = None
    gender: str | None = None
    date_of_birth: date | None = None
    country: str | None = None
    state: str | None = None
    city: str | None = None
    address: str | None = None
    postal_code: str | None = None
    emergency_contact: str | None = None
    emergency_phone: str | None = None
    medical_history: str | None = None
    current_medications: str | None = None
    allergies: str | None = None
    insurance_provider: str | None = None
    insurance_number: str | None = None
    room: str | None = None


class BookingRejectRequest(BaseModel):
    """Schema for rejecting a booking request."""

    reason: str | None = None


class BookingAcceptData(BaseModel):
    """Records created by an accepted booking."""

    booking_request_id: str
    patient_id: str
    patient_code: str
    appointment_id: str
    provider_id: str
    auto_assigned: bool
    state: str


class BookingAcceptResponse(BaseModel):
    """Response for an accepted booking request."""

    success: bool = True
    message: str
    data: BookingAcceptData
    warning: str | None = None
