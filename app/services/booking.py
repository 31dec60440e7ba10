"""Booking request acceptance and rejection.

Accepting a request turns it into a committed patient, a committed
appointment and an updated request. These are separate commits, not one
transaction, so the sequence runs as a saga:

    validate -> resolve provider -> conflict pre-check
    -> write patient            (undo: delete patient)
    -> re-verify provider
    -> re-check conflict, write appointment   (under the provider lock)
    -> mark request accepted    (pivot: never undone)

A failure before the pivot rolls back whatever was written. A failure at
the pivot leaves patient and appointment in place and is reported as a
warning, since the booking itself succeeded.
"""

import logging
from dataclasses import dataclass
from datetime import date, time
from functools import partial
from typing import Any

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.booking.errors import (
    BookingError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
)
from app.booking.locks import provider_lock
from app.booking.saga import BookingState, Saga
from app.booking.validation import validate_patient_details, validate_time_range
from app.models.audit_event import ActorType
from app.models.patient import Patient
from app.models.scheduling import (
    Appointment,
    AppointmentStatus,
    BookingRequest,
    BookingRequestStatus,
)
from app.models.user import CLINICAL_PROVIDER_ROLES, User
from app.schemas.booking import BookingAcceptRequest
from app.services.assignment import ResourceAssigner
from app.services.audit import write_audit_event
from app.services.conflicts import ConflictDetector
from app.services.patient_ids import PatientRegistrar
from app.services.rbac import Permission, PermissionGate
from app.utils.time import utc_now

logger = logging.getLogger(__name__)

STALE_REQUEST_WARNING = (
    "Patient and appointment were created, but the booking request "
    "could not be marked as accepted"
)


@dataclass(frozen=True)
class RequestSnapshot:
    """Plain copy of a booking request, taken before any write.

    A rollback expires ORM instances; the saga reads from this instead.
    """

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

    @classmethod
    def of(cls, request: BookingRequest) -> "RequestSnapshot":
        return cls(
            id=request.id,
            full_name=request.full_name,
            email=request.email,
            mobile=request.mobile,
            gender=request.gender,
            date_of_birth=request.date_of_birth,
            appointment_date=request.appointment_date,
            start_time=request.start_time,
            end_time=request.end_time,
            appointment_type=request.appointment_type,
            provider_id=request.provider_id,
            reason=request.reason,
            notes=request.notes,
        )

    def applicant_fields(self) -> dict[str, Any]:
        return {
            "full_name": self.full_name,
            "email": self.email,
            "mobile": self.mobile,
            "gender": self.gender,
            "date_of_birth": self.date_of_birth,
        }


@dataclass
class BookingOutcome:
    """Result of accepting a booking request."""

    state: BookingState
    booking_request_id: str
    patient: Patient
    appointment: Appointment
    provider_id: str
    auto_assigned: bool
    warning: str | None = None

    @property
    def message(self) -> str:
        if self.warning:
            return "Appointment booked with warnings"
        return "Appointment request accepted successfully"


class BookingService:
    """Accepts and rejects booking requests."""

    def __init__(
        self,
        session: AsyncSession,
        gate: PermissionGate | None = None,
        registrar: PatientRegistrar | None = None,
        assigner: ResourceAssigner | None = None,
        detector: ConflictDetector | None = None,
    ):
        self.session = session
        self.gate = gate or PermissionGate()
        self.registrar = registrar or PatientRegistrar(session)
        self.assigner = assigner or ResourceAssigner(session)
        self.detector = detector or ConflictDetector(session)

    # =========================================================================
    # Accept
    # =========================================================================

    async def accept(
        self,
        request_id: str,
        details: BookingAcceptRequest,
        actor: User | None,
    ) -> BookingOutcome:
        """Accept a pending booking request.

        Args:
            request_id: Booking request to accept
            details: Patient details supplied by staff
            actor: Staff user performing the acceptance

        Returns:
            BookingOutcome with the created patient and appointment

        Raises:
            PermissionDeniedError: Actor may not accept bookings
            NotFoundError: Request (or pinned provider) does not exist
            InvalidStateError: Request is not pending
            ValidationError: Patient details or request times are invalid
            NoEligibleResourceError: No provider could be assigned
            ConflictError: Provider is busy during the requested slot
            AllocationExhaustedError: Patient code kept colliding
            PersistenceError: A read or write failed
        """
        actor_id = self.gate.require(actor, Permission.BOOKINGS_ACCEPT)
        saga = Saga("accept_booking", booking_request_id=request_id)

        request = await self._load_pending(request_id)
        snapshot = RequestSnapshot.of(request)

        saga.transition(BookingState.VALIDATING)
        try:
            fields = validate_patient_details(
                {**snapshot.applicant_fields(), **details.model_dump(exclude_none=True)}
            )
            validate_time_range(snapshot.start_time, snapshot.end_time)
        except BookingError:
            saga.transition(BookingState.REJECTED)
            raise

        # Read-only checks first, so a busy slot or an empty provider pool
        # is reported before anything is written
        try:
            saga.transition(BookingState.RESOLVING_RESOURCE)
            provider_id, auto_assigned = await self._resolve_provider(snapshot)
            saga.transition(BookingState.CHECKING_CONFLICT)
            await self.detector.ensure_available(
                provider_id,
                snapshot.appointment_date,
                snapshot.start_time,
                snapshot.end_time,
            )
        except BookingError:
            saga.transition(BookingState.FAILED)
            raise

        try:
            saga.transition(BookingState.ALLOCATING_PATIENT)
            patient = await self.registrar.register(fields, created_by=actor_id)
            patient_id = patient.id
            saga.register(
                "delete_patient",
                partial(self._delete_patient, patient_id),
                entity_id=patient_id,
            )

            saga.transition(BookingState.RESOLVING_RESOURCE)
            await self.assigner.resolve(provider_id, CLINICAL_PROVIDER_ROLES)

            async with provider_lock(provider_id):
                saga.transition(BookingState.CHECKING_CONFLICT)
                await self.detector.ensure_available(
                    provider_id,
                    snapshot.appointment_date,
                    snapshot.start_time,
                    snapshot.end_time,
                )
                saga.transition(BookingState.CREATING_APPOINTMENT)
                appointment = await self._write_appointment(
                    snapshot,
                    patient_id=patient_id,
                    provider_id=provider_id,
                    room=details.room,
                    actor_id=actor_id,
                )
                appointment_id = appointment.id
        except Exception as e:
            await self._rollback()
            await saga.compensate(e)
            raise

        saga.pivot()
        saga.transition(BookingState.UPDATING_REQUEST)
        warning = None
        try:
            await self._mark_accepted(
                snapshot.id,
                actor_id=actor_id,
                patient_id=patient_id,
                appointment_id=appointment_id,
                assigned_provider_id=provider_id if auto_assigned else None,
            )
        except BookingError as e:
            await self._rollback()
            logger.warning(
                f"Booking request {snapshot.id} not marked accepted: {e.message}",
                extra={
                    "booking_request_id": snapshot.id,
                    "patient_id": patient_id,
                    "appointment_id": appointment_id,
                },
            )
            warning = STALE_REQUEST_WARNING
            await self.session.refresh(patient)
            await self.session.refresh(appointment)
            saga.transition(BookingState.ACCEPTED_WITH_WARNING)
        else:
            saga.transition(BookingState.ACCEPTED)

        return BookingOutcome(
            state=saga.state,
            booking_request_id=snapshot.id,
            patient=patient,
            appointment=appointment,
            provider_id=provider_id,
            auto_assigned=auto_assigned,
            warning=warning,
        )

    async def _load_pending(self, request_id: str) -> BookingRequest:
        request = await self._load(request_id)
        if request.status != BookingRequestStatus.PENDING:
            raise InvalidStateError(
                f"Request has already been {getattr(request.status, 'value', request.status)}"
            )
        return request

    async def _load(self, request_id: str) -> BookingRequest:
        try:
            request = await self.session.get(
                BookingRequest, request_id, populate_existing=True
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load booking request: {e}") from e
        if request is None:
            raise NotFoundError("Appointment request not found")
        return request

    async def _resolve_provider(self, snapshot: RequestSnapshot) -> tuple[str, bool]:
        """Return (provider_id, auto_assigned) for the request."""
        if snapshot.provider_id:
            provider = await self.assigner.resolve(
                snapshot.provider_id, CLINICAL_PROVIDER_ROLES
            )
            return provider.id, False
        provider_id = await self.assigner.assign_fallback(
            CLINICAL_PROVIDER_ROLES, snapshot.appointment_date
        )
        return provider_id, True

    async def _write_appointment(
        self,
        snapshot: RequestSnapshot,
        patient_id: str,
        provider_id: str,
        room: str | None,
        actor_id: str,
    ) -> Appointment:
        appointment = Appointment(
            patient_id=patient_id,
            provider_id=provider_id,
            booking_request_id=snapshot.id,
            appointment_date=snapshot.appointment_date,
            start_time=snapshot.start_time,
            end_time=snapshot.end_time,
            appointment_type=snapshot.appointment_type,
            status=AppointmentStatus.SCHEDULED,
            room=room,
            notes=snapshot.notes or snapshot.reason,
            created_by=actor_id,
        )
        self.session.add(appointment)
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError(f"Failed to create appointment: {e}") from e

        await self.session.refresh(appointment)
        logger.info(
            f"Created appointment {appointment.id} for booking request {snapshot.id}",
            extra={"booking_request_id": snapshot.id, "appointment_id": appointment.id},
        )
        return appointment

    async def _delete_patient(self, patient_id: str) -> None:
        """Compensation for the patient write."""
        try:
            await self.session.execute(delete(Patient).where(Patient.id == patient_id))
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

    async def _mark_accepted(
        self,
        request_id: str,
        actor_id: str,
        patient_id: str,
        appointment_id: str,
        assigned_provider_id: str | None,
    ) -> None:
        """Flip the request to accepted, only if it is still pending."""
        values: dict[str, Any] = {
            "status": BookingRequestStatus.ACCEPTED,
            "processed_by": actor_id,
            "processed_at": utc_now(),
            "patient_id": patient_id,
            "appointment_id": appointment_id,
        }
        if assigned_provider_id:
            values["provider_id"] = assigned_provider_id

        try:
            result = await self.session.execute(
                update(BookingRequest)
                .where(
                    BookingRequest.id == request_id,
                    BookingRequest.status == BookingRequestStatus.PENDING,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self.session.rollback()
                raise InvalidStateError(
                    "Booking request was processed by someone else",
                    code="STALE_REQUEST",
                )
            await write_audit_event(
                self.session,
                actor_type=ActorType.STAFF,
                actor_id=actor_id,
                action="booking_request.accept",
                action_category="booking",
                entity_type="booking_request",
                entity_id=request_id,
                metadata={
                    "patient_id": patient_id,
                    "appointment_id": appointment_id,
                    "auto_assigned_provider_id": assigned_provider_id,
                },
                commit=False,
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError(f"Failed to update booking request: {e}") from e

    async def _rollback(self) -> None:
        try:
            await self.session.rollback()
        except SQLAlchemyError as e:
            logger.error(f"Rollback failed: {e}")

    # =========================================================================
    # Reject
    # =========================================================================

    async def reject(
        self,
        request_id: str,
        actor: User | None,
        reason: str | None = None,
    ) -> BookingRequest:
        """Reject a pending booking request.

        The request is kept with status ``rejected`` for traceability.

        Raises:
            PermissionDeniedError: Actor may not reject bookings
            NotFoundError: Request does not exist
            InvalidStateError: Request is not pending
        """
        actor_id = self.gate.require(actor, Permission.BOOKINGS_REJECT)
        request = await self._load_pending(request_id)

        request.status = BookingRequestStatus.REJECTED
        request.processed_by = actor_id
        request.processed_at = utc_now()
        request.rejection_reason = reason

        try:
            await write_audit_event(
                self.session,
                actor_type=ActorType.STAFF,
                actor_id=actor_id,
                action="booking_request.reject",
                action_category="booking",
                entity_type="booking_request",
                entity_id=request.id,
                metadata={"reason": reason},
            )
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError(f"Failed to reject booking request: {e}") from e

        await self.session.refresh(request)
        logger.info(
            f"Booking request {request.id} rejected",
            extra={"booking_request_id": request.id, "user_id": actor_id},
        )
        return request

