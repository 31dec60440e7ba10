"""Scheduling service for direct appointment management.

Staff can book, edit, reassign, progress and cancel appointments outside
the booking request flow. Every change that moves an appointment in time
or onto another provider re-checks the provider's calendar with the same
``ConflictDetector`` the booking saga uses, under the same provider lock.
"""

import logging
from datetime import date, time
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.booking.errors import (
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from app.booking.locks import provider_lock
from app.booking.validation import parse_date, parse_enum, validate_time_range
from app.core.config import settings
from app.models.audit_event import ActorType
from app.models.patient import Patient
from app.models.scheduling import Appointment, AppointmentStatus, AppointmentType
from app.models.user import User
from app.schemas.appointment import AppointmentCreate, AppointmentUpdate
from app.services.assignment import ResourceAssigner
from app.services.audit import write_audit_event
from app.services.conflicts import ConflictCheck, ConflictDetector, parse_hhmm
from app.utils.time import add_minutes, combine_utc, utc_now

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100

# Statuses from which an appointment can no longer move
FINAL_STATUSES = frozenset(
    {AppointmentStatus.CANCELLED.value, AppointmentStatus.COMPLETED.value}
)


class SchedulingService:
    """Service for managing appointments."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.detector = ConflictDetector(session)
        self.assigner = ResourceAssigner(session)

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_appointment(self, appointment_id: str) -> Appointment:
        """Get an appointment by id.

        Raises:
            NotFoundError: If it does not exist
        """
        try:
            appointment = await self.session.get(Appointment, appointment_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load appointment: {e}") from e
        if appointment is None:
            raise NotFoundError("Appointment not found")
        return appointment

    async def list_appointments(
        self,
        on_date: date | None = None,
        status: AppointmentStatus | None = None,
        provider_id: str | None = None,
        patient_id: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Appointment], int]:
        """List appointments by date and start time.

        Returns:
            Tuple of (appointments on this page, total matching count)
        """
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        query = select(Appointment)
        if on_date:
            query = query.where(Appointment.appointment_date == on_date)
        if status:
            query = query.where(Appointment.status == status)
        if provider_id:
            query = query.where(Appointment.provider_id == provider_id)
        if patient_id:
            query = query.where(Appointment.patient_id == patient_id)

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.session.execute(count_query)).scalar_one()

        result = await self.session.execute(
            query.order_by(Appointment.appointment_date, Appointment.start_time)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def available_providers(
        self,
        on_date: date,
        start: time,
        end: time,
    ) -> list[tuple[User, ConflictCheck]]:
        """Every eligible provider with their verdict for the slot."""
        validate_time_range(start, end)
        providers = await self.assigner.list_eligible()
        return [
            (provider, await self.detector.check(provider.id, on_date, start, end))
            for provider in providers
        ]

    # =========================================================================
    # Mutations
    # =========================================================================

    async def create_appointment(
        self,
        payload: AppointmentCreate,
        actor_id: str,
    ) -> Appointment:
        """Book an appointment for an existing patient.

        The end time comes from ``end_time`` or, failing that, from
        ``duration_minutes`` (default from settings). Without a provider
        the first eligible one is assigned.

        Raises:
            NotFoundError: Patient or provider does not exist
            ValidationError: Bad date, times or type
            ConflictError: Provider is busy during the slot
        """
        try:
            patient = await self.session.get(Patient, str(payload.patient_id))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load patient: {e}") from e
        if patient is None:
            raise NotFoundError("Patient not found", code="PATIENT_NOT_FOUND")

        on_date = parse_date(payload.appointment_date)
        start, end = self._resolve_times(
            payload.start_time, payload.end_time, payload.duration_minutes
        )
        appointment_type = parse_enum(
            AppointmentType, payload.appointment_type, "appointment_type"
        )

        if payload.provider_id:
            provider = await self.assigner.resolve(str(payload.provider_id))
            provider_id = provider.id
        else:
            provider_id = await self.assigner.assign_fallback(on_date=on_date)

        async with provider_lock(provider_id):
            await self.detector.ensure_available(provider_id, on_date, start, end)
            appointment = Appointment(
                patient_id=patient.id,
                provider_id=provider_id,
                appointment_date=on_date,
                start_time=start,
                end_time=end,
                appointment_type=appointment_type,
                status=AppointmentStatus.SCHEDULED,
                room=payload.room,
                notes=payload.notes,
                created_by=actor_id,
            )
            self.session.add(appointment)
            await self._flush()
            await self._commit(appointment, "appointment.create", actor_id)

        return appointment

    async def update_appointment(
        self,
        appointment_id: str,
        payload: AppointmentUpdate,
        actor_id: str,
    ) -> Appointment:
        """Edit an appointment, re-checking the calendar if the slot moves.

        Raises:
            NotFoundError: Appointment or new provider does not exist
            InvalidStateError: Appointment is cancelled or completed
            ConflictError: New slot overlaps another appointment
        """
        appointment = await self.get_appointment(appointment_id)
        self._ensure_open(appointment, "edited")

        on_date = (
            parse_date(payload.appointment_date)
            if payload.appointment_date
            else appointment.appointment_date
        )
        start = parse_hhmm(payload.start_time) if payload.start_time else appointment.start_time
        end = parse_hhmm(payload.end_time) if payload.end_time else appointment.end_time
        validate_time_range(start, end)

        provider_id = appointment.provider_id
        if payload.provider_id and str(payload.provider_id) != provider_id:
            provider = await self.assigner.resolve(str(payload.provider_id))
            provider_id = provider.id

        changes: dict[str, Any] = {}
        async with provider_lock(provider_id):
            slot_moved = (
                on_date != appointment.appointment_date
                or start != appointment.start_time
                or end != appointment.end_time
                or provider_id != appointment.provider_id
            )
            if slot_moved:
                await self.detector.ensure_available(
                    provider_id,
                    on_date,
                    start,
                    end,
                    exclude_appointment_id=appointment.id,
                )
                changes["slot"] = {
                    "from": self._slot_label(appointment),
                    "to": f"{on_date} {start:%H:%M}-{end:%H:%M} provider={provider_id}",
                }
                appointment.appointment_date = on_date
                appointment.start_time = start
                appointment.end_time = end
                appointment.provider_id = provider_id

            if payload.appointment_type:
                appointment.appointment_type = parse_enum(
                    AppointmentType, payload.appointment_type, "appointment_type"
                )
            if payload.room is not None:
                appointment.room = payload.room
            if payload.notes is not None:
                appointment.notes = payload.notes

            await self._commit(appointment, "appointment.update", actor_id, changes)

        return appointment

    async def reassign(
        self,
        appointment_id: str,
        new_provider_id: str | None,
        reason: str | None,
        actor_id: str,
    ) -> Appointment:
        """Move an appointment to another provider at the same time.

        Raises:
            ValidationError: Missing provider or reason, or same provider
            NotFoundError: Appointment or provider does not exist
            InvalidStateError: Appointment is cancelled or completed
            ConflictError: New provider is busy during the slot
        """
        if not new_provider_id:
            raise ValidationError("New doctor is required", code="MISSING_FIELDS")
        if not reason or not reason.strip():
            raise ValidationError("Reassignment reason is required", code="MISSING_FIELDS")

        appointment = await self.get_appointment(appointment_id)
        self._ensure_open(appointment, "reassigned")

        provider = await self.assigner.resolve(new_provider_id)
        if provider.id == appointment.provider_id:
            raise ValidationError(
                "Appointment is already assigned to this doctor",
                code="SAME_PROVIDER",
            )

        async with provider_lock(provider.id):
            await self.detector.ensure_available(
                provider.id,
                appointment.appointment_date,
                appointment.start_time,
                appointment.end_time,
                exclude_appointment_id=appointment.id,
            )
            previous_provider_id = appointment.provider_id
            appointment.original_provider_id = previous_provider_id
            appointment.provider_id = provider.id
            appointment.reassignment_reason = reason.strip()
            appointment.reassigned_at = utc_now()
            appointment.reassigned_by = actor_id

            await self._commit(
                appointment,
                "appointment.reassign",
                actor_id,
                {"from_provider_id": previous_provider_id, "to_provider_id": provider.id},
            )

        return appointment

    async def update_status(
        self,
        appointment_id: str,
        status: str,
        actor_id: str,
    ) -> Appointment:
        """Move an appointment along its lifecycle (check-in, completion...).

        Cancelling goes through ``cancel`` so its rules and fields apply.
        """
        new_status = parse_enum(AppointmentStatus, status, "status")
        if new_status == AppointmentStatus.CANCELLED:
            raise ValidationError(
                "Use the cancel operation to cancel an appointment",
                code="INVALID_STATUS",
            )

        appointment = await self.get_appointment(appointment_id)
        if appointment.status == AppointmentStatus.CANCELLED:
            raise InvalidStateError("Cancelled appointments cannot change status")

        previous = appointment.status
        appointment.status = new_status
        await self._commit(
            appointment,
            "appointment.status",
            actor_id,
            {"from": getattr(previous, "value", previous), "to": new_status.value},
        )
        return appointment

    async def cancel(
        self,
        appointment_id: str,
        reason: str | None,
        actor_id: str,
    ) -> Appointment:
        """Cancel an appointment, releasing its slot.

        Raises:
            InvalidStateError: Already cancelled, completed, or in the past
        """
        appointment = await self.get_appointment(appointment_id)

        if appointment.status == AppointmentStatus.CANCELLED:
            raise InvalidStateError("Appointment is already cancelled")
        if appointment.status == AppointmentStatus.COMPLETED:
            raise InvalidStateError("Cannot cancel a completed appointment")
        if combine_utc(appointment.appointment_date, appointment.start_time) < utc_now():
            raise InvalidStateError("Cannot cancel past appointments")

        appointment.status = AppointmentStatus.CANCELLED
        appointment.cancelled_at = utc_now()
        appointment.cancelled_by = actor_id
        appointment.cancellation_reason = reason

        await self._commit(appointment, "appointment.cancel", actor_id, {"reason": reason})
        return appointment

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _resolve_times(
        start_value: str | None,
        end_value: str | None,
        duration_minutes: int | None,
    ) -> tuple[time, time]:
        if not start_value:
            raise ValidationError("start_time is required", code="MISSING_FIELDS")
        start = parse_hhmm(start_value)

        if end_value:
            end = parse_hhmm(end_value)
        else:
            minutes = duration_minutes or settings.default_appointment_minutes
            try:
                end = add_minutes(start, minutes)
            except ValueError:
                raise ValidationError(
                    "Appointment cannot extend past midnight",
                    code="CROSSES_MIDNIGHT",
                )

        validate_time_range(start, end)
        return start, end

    @staticmethod
    def _ensure_open(appointment: Appointment, verb: str) -> None:
        status = getattr(appointment.status, "value", appointment.status)
        if status in FINAL_STATUSES:
            raise InvalidStateError(f"A {status} appointment cannot be {verb}")

    @staticmethod
    def _slot_label(appointment: Appointment) -> str:
        return (
            f"{appointment.appointment_date} {appointment.start_time:%H:%M}-"
            f"{appointment.end_time:%H:%M} provider={appointment.provider_id}"
        )

    async def _flush(self) -> None:
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError(f"Failed to save appointment: {e}") from e

    async def _commit(
        self,
        appointment: Appointment,
        action: str,
        actor_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Commit the appointment change together with its audit event."""
        try:
            await write_audit_event(
                self.session,
                actor_type=ActorType.STAFF,
                actor_id=actor_id,
                action=action,
                action_category="scheduling",
                entity_type="appointment",
                entity_id=appointment.id,
                metadata=metadata or None,
                commit=False,
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError(f"Failed to save appointment: {e}") from e

        await self.session.refresh(appointment)
        logger.info(
            f"{action} {appointment.id}",
            extra={"appointment_id": appointment.id, "user_id": actor_id, "action": action},
        )
