"""Appointment conflict detection.

A provider's appointments on a given date must not overlap. Intervals
are half-open ``[start, end)`` in minutes since midnight, so an
appointment ending at 10:00 does not conflict with one starting at 10:00.
Cancelled appointments no longer occupy their slot.

This is the only overlap implementation in the codebase. Booking
acceptance and every direct appointment mutation go through it.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, time

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.booking.errors import (
    ConflictError,
    ConflictingInterval,
    PersistenceError,
    ValidationError,
)
from app.models.scheduling import Appointment, AppointmentStatus

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?$")


def parse_hhmm(value: time | str) -> time:
    """Parse a wall-clock ``HH:MM`` time.

    ``HH:MM:SS`` is accepted too; seconds are dropped since slots are
    compared at minute resolution.

    Raises:
        ValidationError: If the value is not a valid 24h time
    """
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    match = TIME_PATTERN.match(str(value).strip())
    if not match:
        raise ValidationError(
            f"Invalid time '{value}'. Use HH:MM",
            code="INVALID_TIME",
        )
    return time(int(match.group(1)), int(match.group(2)))


def to_minutes(value: time) -> int:
    """Minutes since midnight."""
    return value.hour * 60 + value.minute


def format_hhmm(value: time) -> str:
    return value.strftime("%H:%M")


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Whether two half-open minute intervals share any minute.

    Examples:
        >>> intervals_overlap(540, 600, 600, 660)
        False
        >>> intervals_overlap(540, 601, 600, 660)
        True
    """
    return start_a < end_b and start_b < end_a


@dataclass(frozen=True)
class ConflictCheck:
    """Result of a conflict check.

    Attributes:
        has_conflict: Whether the proposed slot overlaps anything
        conflicts: Overlapping appointments (the first one found)
    """

    has_conflict: bool
    conflicts: tuple[ConflictingInterval, ...] = field(default_factory=tuple)

    @property
    def first(self) -> ConflictingInterval | None:
        return self.conflicts[0] if self.conflicts else None


class ConflictDetector:
    """Checks proposed slots against a provider's live appointments."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_occupied(
        self,
        provider_id: str,
        on_date: date,
        exclude_appointment_id: str | None = None,
    ) -> list[Appointment]:
        """Non-cancelled appointments for a provider on a date, by start time."""
        query = (
            select(Appointment)
            .where(
                Appointment.provider_id == provider_id,
                Appointment.appointment_date == on_date,
                Appointment.status != AppointmentStatus.CANCELLED,
            )
            .order_by(Appointment.start_time)
        )
        if exclude_appointment_id:
            query = query.where(Appointment.id != exclude_appointment_id)

        try:
            result = await self.session.execute(query)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load appointments: {e}") from e
        return list(result.scalars().all())

    async def check(
        self,
        provider_id: str,
        on_date: date,
        start: time,
        end: time,
        exclude_appointment_id: str | None = None,
    ) -> ConflictCheck:
        """Check whether ``[start, end)`` is free on the provider's calendar.

        Args:
            provider_id: Provider whose calendar to check
            on_date: Appointment date
            start: Proposed start time
            end: Proposed (exclusive) end time
            exclude_appointment_id: Appointment being edited, ignored

        Returns:
            ConflictCheck with the first overlapping appointment, if any

        Raises:
            ValidationError: If the interval is empty or inverted
            PersistenceError: If appointments cannot be read
        """
        start_min = to_minutes(start)
        end_min = to_minutes(end)
        if end_min <= start_min:
            raise ValidationError(
                "End time must be after start time",
                code="INVALID_TIME_RANGE",
            )

        existing = await self.list_occupied(provider_id, on_date, exclude_appointment_id)

        for appointment in existing:
            if intervals_overlap(
                start_min,
                end_min,
                to_minutes(appointment.start_time),
                to_minutes(appointment.end_time),
            ):
                return ConflictCheck(
                    has_conflict=True,
                    conflicts=(
                        ConflictingInterval(
                            appointment_id=appointment.id,
                            start_time=appointment.start_time,
                            end_time=appointment.end_time,
                        ),
                    ),
                )

        return ConflictCheck(has_conflict=False)

    async def ensure_available(
        self,
        provider_id: str,
        on_date: date,
        start: time,
        end: time,
        exclude_appointment_id: str | None = None,
    ) -> None:
        """Raise ConflictError if the slot overlaps an existing appointment."""
        verdict = await self.check(
            provider_id, on_date, start, end, exclude_appointment_id
        )
        if verdict.has_conflict:
            conflict = verdict.first
            logger.info(
                f"Slot {format_hhmm(start)}-{format_hhmm(end)} on {on_date} "
                f"conflicts with appointment {conflict.appointment_id}"
            )
            raise ConflictError(
                "Provider already has an appointment during this time slot",
                conflict=conflict,
            )
