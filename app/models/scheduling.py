"""Scheduling models for booking requests and provider appointments.

Appointments are per-provider, per-day intervals. Times are stored as
wall-clock ``Time`` values and compared as half-open ``[start, end)``
intervals; a cancelled appointment no longer occupies its slot.
"""

from datetime import date, datetime, time
from enum import Enum

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    Time,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin


class AppointmentType(str, Enum):
    """Kind of visit being booked."""

    CONSULT = "consult"
    FOLLOW_UP = "follow-up"
    SURGERY = "surgery"
    REFRACTION = "refraction"
    OTHER = "other"


class AppointmentStatus(str, Enum):
    """Status of an appointment."""

    SCHEDULED = "scheduled"
    CHECKED_IN = "checked-in"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


class BookingRequestStatus(str, Enum):
    """Lifecycle status of a booking request."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class BookingSource(str, Enum):
    """Where a booking request came from."""

    PUBLIC_FORM = "public_form"
    STAFF = "staff"


class Appointment(Base, TimestampMixin):
    """Scheduled appointment between a patient and a provider.

    Never physically deleted; cancelling releases the slot.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_provider_day", "provider_id", "appointment_date"),
    )

    # Patient and provider
    patient_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("patients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    provider_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    # Originating booking request, if any
    booking_request_id: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        nullable=True,
        index=True,
    )

    # Slot
    appointment_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
    )
    start_time: Mapped[time] = mapped_column(
        Time,
        nullable=False,
    )
    # Exclusive
    end_time: Mapped[time] = mapped_column(
        Time,
        nullable=False,
    )

    appointment_type: Mapped[AppointmentType] = mapped_column(
        String(30),
        default=AppointmentType.CONSULT,
        nullable=False,
    )
    status: Mapped[AppointmentStatus] = mapped_column(
        String(30),
        default=AppointmentStatus.SCHEDULED,
        nullable=False,
        index=True,
    )
    room: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )
    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    created_by: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        nullable=True,
    )

    # Cancellation
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    cancelled_by: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        nullable=True,
    )
    cancellation_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Reassignment
    original_provider_id: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        nullable=True,
    )
    reassignment_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    reassigned_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    reassigned_by: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<Appointment {self.appointment_date} "
            f"{self.start_time}-{self.end_time} provider={self.provider_id}>"
        )


class BookingRequest(Base, TimestampMixin):
    """Prospective appointment awaiting staff review.

    Transitions exactly once, from pending to accepted or rejected.
    Rows are kept after processing for traceability.
    """

    __tablename__ = "booking_requests"

    # Applicant
    full_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    mobile: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
    )
    gender: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    date_of_birth: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    # Requested slot
    appointment_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )
    start_time: Mapped[time] = mapped_column(
        Time,
        nullable=False,
    )
    end_time: Mapped[time] = mapped_column(
        Time,
        nullable=False,
    )
    appointment_type: Mapped[AppointmentType] = mapped_column(
        String(30),
        default=AppointmentType.CONSULT,
        nullable=False,
    )
    # Pinned provider; null lets the assigner choose at accept time
    provider_id: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        nullable=True,
    )
    reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    source: Mapped[BookingSource] = mapped_column(
        String(30),
        default=BookingSource.PUBLIC_FORM,
        nullable=False,
    )

    # Processing
    status: Mapped[BookingRequestStatus] = mapped_column(
        String(20),
        default=BookingRequestStatus.PENDING,
        nullable=False,
        index=True,
    )
    processed_by: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        nullable=True,
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    rejection_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    patient_id: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        nullable=True,
    )
    appointment_id: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<BookingRequest {self.id} status={self.status}>"
