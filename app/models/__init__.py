"""Database models for ClinicDesk."""

from app.models.audit_event import ActorType, AuditEvent
from app.models.patient import Gender, Patient, PatientStatus
from app.models.scheduling import (
    Appointment,
    AppointmentStatus,
    AppointmentType,
    BookingRequest,
    BookingRequestStatus,
    BookingSource,
)
from app.models.user import CLINICAL_PROVIDER_ROLES, User, UserRole

__all__ = [
    # Staff
    "User",
    "UserRole",
    "CLINICAL_PROVIDER_ROLES",
    # Patient
    "Patient",
    "PatientStatus",
    "Gender",
    # Audit
    "AuditEvent",
    "ActorType",
    # Scheduling
    "Appointment",
    "AppointmentStatus",
    "AppointmentType",
    "BookingRequest",
    "BookingRequestStatus",
    "BookingSource",
]
