"""Input validation for booking requests and appointments.

All failures raise ``ValidationError`` so the API layer can answer with a
400 and a stable code instead of a generic schema error.
"""

import re
from collections.abc import Iterable, Mapping
from datetime import date, time
from enum import Enum
from typing import Any, TypeVar

from app.booking.errors import ValidationError
from app.models.patient import Gender
from app.services.conflicts import parse_hhmm

E = TypeVar("E", bound=Enum)

MOBILE_PATTERN = re.compile(r"^(\+\d{1,3}[- ]?)?\d{10}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
WHITESPACE = re.compile(r"\s+")

# Fields a booking must carry before a patient record can be written
REQUIRED_PATIENT_FIELDS = ("full_name", "mobile", "gender", "state")

MIN_NAME_LENGTH = 2


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def require_fields(data: Mapping[str, Any], fields: Iterable[str]) -> None:
    """Raise if any of ``fields`` is missing or blank in ``data``."""
    missing = [name for name in fields if _is_blank(data.get(name))]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            code="MISSING_FIELDS",
        )


def validate_name(value: str | None) -> str:
    """Strip and check a person's name."""
    name = (value or "").strip()
    if len(name) < MIN_NAME_LENGTH:
        raise ValidationError(
            f"Name must be at least {MIN_NAME_LENGTH} characters",
            code="INVALID_NAME",
        )
    return name


def normalize_mobile(value: str | None) -> str:
    """Remove whitespace and check the mobile number format.

    Accepts ten digits with an optional ``+CC`` country prefix, e.g.
    ``9876543210`` or ``+91 98765 43210``.
    """
    cleaned = WHITESPACE.sub("", value or "")
    if not MOBILE_PATTERN.match(cleaned):
        raise ValidationError("Invalid mobile number format", code="INVALID_MOBILE")
    return cleaned


def normalize_email(value: str | None) -> str | None:
    """Return a stripped email, or None when absent."""
    if _is_blank(value):
        return None
    email = value.strip()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email format", code="INVALID_EMAIL")
    return email


def normalize_gender(value: str | None) -> str:
    """Lower-case and check a gender value."""
    gender = (value or "").strip().lower()
    allowed = [g.value for g in Gender]
    if gender not in allowed:
        raise ValidationError(
            f"Invalid gender. Must be one of: {', '.join(allowed)}",
            code="INVALID_GENDER",
        )
    return gender


def parse_enum(enum_cls: type[E], value: Any, field: str) -> E:
    """Coerce ``value`` into ``enum_cls`` or raise a ValidationError."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(
            f"Invalid {field}. Must be one of: {allowed}",
            code=f"INVALID_{field.upper()}",
        )


def parse_date(value: date | str | None, field: str = "appointment_date") -> date:
    """Parse an ISO ``YYYY-MM-DD`` date."""
    if isinstance(value, date):
        return value
    if _is_blank(value):
        raise ValidationError(f"{field} is required", code="MISSING_FIELDS")
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ValidationError(
            f"Invalid {field}. Use YYYY-MM-DD",
            code="INVALID_DATE",
        )


def validate_time_range(start: time, end: time) -> None:
    """Require a non-empty ``[start, end)`` interval."""
    if end <= start:
        raise ValidationError(
            "End time must be after start time",
            code="INVALID_TIME_RANGE",
        )


def parse_time_range(
    start: time | str | None,
    end: time | str | None,
) -> tuple[time, time]:
    """Parse ``HH:MM`` (or ``HH:MM:SS``) bounds and check their order."""
    if _is_blank(start) or _is_blank(end):
        raise ValidationError(
            "start_time and end_time are required",
            code="MISSING_FIELDS",
        )
    start_t = parse_hhmm(start)
    end_t = parse_hhmm(end)
    validate_time_range(start_t, end_t)
    return start_t, end_t


def validate_patient_details(data: Mapping[str, Any]) -> dict[str, Any]:
    """Validate and normalize the contact fields of a new patient.

    Args:
        data: Merged booking request and staff-supplied fields

    Returns:
        Copy of ``data`` with name, mobile, email and gender normalized

    Raises:
        ValidationError: On a missing required field or a bad format
    """
    require_fields(data, REQUIRED_PATIENT_FIELDS)

    cleaned = dict(data)
    cleaned["full_name"] = data["full_name"].strip()
    cleaned["mobile"] = normalize_mobile(data["mobile"])
    cleaned["email"] = normalize_email(data.get("email"))
    cleaned["gender"] = normalize_gender(data["gender"])
    cleaned["state"] = data["state"].strip()
    return cleaned
