"""Pydantic schemas for direct appointment operations."""

from datetime import date, datetime, time
from uuid import UUID

from pydantic import BaseModel, Field


class AppointmentCreate(BaseModel):
    """Schema for staff booking an appointment for an existing patient."""

    patient_id: UUID
    provider_id: UUID | None = Field(
        None, description="Omit to auto-assign the first available provider"
    )
    appointment_date: str | None = Field(None, description="YYYY-MM-DD")
    start_time: str | None = Field(None, description="HH:MM")
    end_time: str | None = Field(None, description="HH:MM; or give duration_minutes")
    duration_minutes: int | None = Field(None, gt=0, le=24 * 60)
    appointment_type: str = "consult"
    room: str | None = None
    notes: str | None = None


class AppointmentUpdate(BaseModel):
    """Schema for editing an appointment; omitted fields are unchanged."""

    provider_id: UUID | None = None
    appointment_date: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    appointment_type: str | None = None
    room: str | None = None
    notes: str | None = None


class AppointmentStatusUpdate(BaseModel):
    """Schema for moving an appointment through its lifecycle."""

    status: str


class AppointmentReassign(BaseModel):
    """Schema for moving an appointment to another provider."""

    new_provider_id: UUID | None = None
    reason: str | None = None


class AppointmentCancel(BaseModel):
    """Schema for cancelling an appointment."""

    reason: str | None = None


class AppointmentRead(BaseModel):
    """Schema for reading an appointment."""

    id: str
    patient_id: str
    provider_id: str
    booking_request_id: str | None
    appointment_date: date
    start_time: time
    end_time: time
    appointment_type: str
    status: str
    room: str | None
    notes: str | None
    created_by: str | None
    cancelled_at: datetime | None
    cancelled_by: str | None
    cancellation_reason: str | None
    original_provider_id: str | None
    reassignment_reason: str | None
    reassigned_at: datetime | None
    reassigned_by: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class AppointmentList(BaseModel):
    """Paginated list of appointments."""

    items: list[AppointmentRead]
    total: int
    page: int
    limit: int
    pages: int


class ConflictRead(BaseModel):
    """Appointment occupying part of a requested slot."""

    appointment_id: str
    start_time: str
    end_time: str


class ProviderAvailability(BaseModel):
    """A provider and whether the requested slot is free on their calendar."""

    provider_id: str
    full_name: str
    role: str
    department: str | None
    available: bool
    conflict: ConflictRead | None = None
