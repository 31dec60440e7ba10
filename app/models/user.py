"""Staff user model.

Providers (the schedulable resources) are staff users holding one of the
clinical roles in ``CLINICAL_PROVIDER_ROLES``.
"""

from enum import Enum

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin


class UserRole(str, Enum):
    """Staff user roles for RBAC."""

    SUPER_ADMIN = "super_admin"
    HOSPITAL_ADMIN = "hospital_admin"
    RECEPTIONIST = "receptionist"
    DOCTOR = "doctor"
    OPTOMETRIST = "optometrist"
    OPHTHALMOLOGIST = "ophthalmologist"
    NURSE = "nurse"
    BILLING_STAFF = "billing_staff"
    READ_ONLY = "read_only"


# Roles eligible to own appointments (stored role values)
CLINICAL_PROVIDER_ROLES = frozenset(
    {
        UserRole.DOCTOR.value,
        UserRole.OPTOMETRIST.value,
        UserRole.OPHTHALMOLOGIST.value,
    }
)


class User(Base, TimestampMixin):
    """Staff user model."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    full_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    role: Mapped[UserRole] = mapped_column(
        String(50),
        nullable=False,
        index=True,
    )
    department: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )
    phone: Mapped[str | None] = mapped_column(
        String(30),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<User {self.email} role={self.role}>"
