"""Patient model.

Patients are owned by the patient-records subsystem. The booking service
writes them when a booking request is accepted, which is why that write
carries a compensating delete.
"""

from datetime import date
from enum import Enum

from sqlalchemy import Date, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin


class Gender(str, Enum):
    """Gender options accepted at registration."""

    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class PatientStatus(str, Enum):
    """Patient record status."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class Patient(Base, TimestampMixin):
    """Registered patient.

    ``patient_code`` is the externally visible identifier printed on
    cards and invoices (``PAT-YYYYMMDD-NNNN``). Its unique index is the
    race detector for concurrent registrations.
    """

    __tablename__ = "patients"

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------
    patient_code: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        nullable=False,
        index=True,
    )
    full_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    gender: Mapped[Gender] = mapped_column(
        String(20),
        nullable=False,
    )
    date_of_birth: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    # -------------------------------------------------------------------------
    # Contact
    # -------------------------------------------------------------------------
    email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )
    mobile: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
    )
    country: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    state: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    city: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )
    address: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    postal_code: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )
    emergency_contact: Mapped[str | None] = mapped_column(
        String(200),
        nullable=True,
    )
    emergency_phone: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )

    # -------------------------------------------------------------------------
    # Intake details
    # -------------------------------------------------------------------------
    medical_history: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    current_medications: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    allergies: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    insurance_provider: Mapped[str | None] = mapped_column(
        String(200),
        nullable=True,
    )
    insurance_number: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    status: Mapped[PatientStatus] = mapped_column(
        String(20),
        default=PatientStatus.ACTIVE,
        nullable=False,
    )
    created_by: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Patient {self.patient_code}>"
