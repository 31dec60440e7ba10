"""Tests for booking request acceptance.

Covers:
- Happy path with pinned and auto-assigned providers
- Permission, state and validation failures (nothing written)
- Compensation when the appointment write fails
- Pivot failure reported as a warning
- Two staff members accepting into the same slot at once
"""

import asyncio
import logging
from datetime import time
from unittest.mock import patch

import pytest
from sqlalchemy import func, select, update

from app.booking.errors import (
    ConflictError,
    InvalidStateError,
    NoEligibleResourceError,
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    ValidationError,
)
from app.booking.saga import BookingState
from app.models.audit_event import AuditEvent
from app.models.patient import Patient
from app.models.scheduling import (
    Appointment,
    AppointmentType,
    BookingRequest,
    BookingRequestStatus,
    BookingSource,
)
from app.models.user import User, UserRole
from app.schemas.booking import BookingAcceptRequest
from app.services.booking import STALE_REQUEST_WARNING, BookingService

DETAILS = BookingAcceptRequest(state="Karnataka", city="Bengaluru", room="R2")


async def _count(session, model) -> int:
    return (await session.execute(select(func.count(model.id)))).scalar_one()


class TestAcceptBooking:
    """Tests for the successful accept flow."""

    @pytest.mark.asyncio
    async def test_accept_with_pinned_provider(
        self, async_session, receptionist, doctor, second_doctor, make_booking_request
    ) -> None:
        request = await make_booking_request(provider_id=second_doctor.id)

        outcome = await BookingService(async_session).accept(
            request.id, DETAILS, receptionist
        )

        assert outcome.state == BookingState.ACCEPTED
        assert outcome.warning is None
        assert outcome.auto_assigned is False
        assert outcome.provider_id == second_doctor.id
        assert outcome.patient.patient_code.startswith("PAT-")
        assert outcome.patient.state == "Karnataka"
        assert outcome.appointment.provider_id == second_doctor.id
        assert outcome.appointment.room == "R2"
        assert outcome.appointment.booking_request_id == request.id

        await async_session.refresh(request)
        assert request.status == BookingRequestStatus.ACCEPTED
        assert request.processed_by == receptionist.id
        assert request.patient_id == outcome.patient.id
        assert request.appointment_id == outcome.appointment.id

    @pytest.mark.asyncio
    async def test_accept_auto_assigns_provider(
        self, async_session, receptionist, doctor, make_booking_request
    ) -> None:
        request = await make_booking_request()

        outcome = await BookingService(async_session).accept(
            request.id, DETAILS, receptionist
        )

        assert outcome.auto_assigned is True
        assert outcome.provider_id == doctor.id
        await async_session.refresh(request)
        assert request.provider_id == doctor.id

    @pytest.mark.asyncio
    async def test_staff_details_override_applicant_fields(
        self, async_session, receptionist, doctor, make_booking_request
    ) -> None:
        request = await make_booking_request()
        details = BookingAcceptRequest(
            state="Kerala", full_name="Priya S. Sharma", mobile="+91 98765 43210"
        )

        outcome = await BookingService(async_session).accept(
            request.id, details, receptionist
        )

        assert outcome.patient.full_name == "Priya S. Sharma"
        assert outcome.patient.mobile == "+919876543210"
        assert outcome.patient.email == "priya@example.com"

    @pytest.mark.asyncio
    async def test_accept_writes_audit_event(
        self, async_session, receptionist, doctor, make_booking_request
    ) -> None:
        request = await make_booking_request()

        await BookingService(async_session).accept(request.id, DETAILS, receptionist)

        result = await async_session.execute(
            select(AuditEvent).where(AuditEvent.action == "booking_request.accept")
        )
        event = result.scalar_one()
        assert event.entity_id == request.id
        assert event.actor_id == receptionist.id


class TestAcceptPreconditions:
    """Failures detected before anything is written."""

    @pytest.mark.asyncio
    async def test_actor_without_permission(
        self, async_session, doctor, make_booking_request
    ) -> None:
        request = await make_booking_request()

        with pytest.raises(PermissionDeniedError):
            await BookingService(async_session).accept(request.id, DETAILS, doctor)

        assert await _count(async_session, Patient) == 0

    @pytest.mark.asyncio
    async def test_missing_actor(self, async_session, doctor, make_booking_request) -> None:
        request = await make_booking_request()

        with pytest.raises(PermissionDeniedError):
            await BookingService(async_session).accept(request.id, DETAILS, None)

    @pytest.mark.asyncio
    async def test_unknown_request(self, async_session, receptionist) -> None:
        with pytest.raises(NotFoundError):
            await BookingService(async_session).accept(
                "00000000-0000-0000-0000-000000000000", DETAILS, receptionist
            )

    @pytest.mark.asyncio
    async def test_already_processed_request(
        self, async_session, receptionist, doctor, make_booking_request
    ) -> None:
        request = await make_booking_request(status=BookingRequestStatus.REJECTED)

        with pytest.raises(InvalidStateError) as exc_info:
            await BookingService(async_session).accept(
                request.id, DETAILS, receptionist
            )

        assert "rejected" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_accepting_twice_fails(
        self, async_session, receptionist, doctor, make_booking_request
    ) -> None:
        request = await make_booking_request()
        service = BookingService(async_session)
        await service.accept(request.id, DETAILS, receptionist)

        with pytest.raises(InvalidStateError):
            await service.accept(request.id, DETAILS, receptionist)

        assert await _count(async_session, Patient) == 1
        assert await _count(async_session, Appointment) == 1

    @pytest.mark.asyncio
    async def test_missing_patient_field(
        self, async_session, receptionist, doctor, make_booking_request
    ) -> None:
        request = await make_booking_request()

        with pytest.raises(ValidationError) as exc_info:
            await BookingService(async_session).accept(
                request.id, BookingAcceptRequest(), receptionist
            )

        assert exc_info.value.code == "MISSING_FIELDS"
        assert "state" in exc_info.value.message
        assert await _count(async_session, Patient) == 0

    @pytest.mark.asyncio
    async def test_invalid_mobile_override(
        self, async_session, receptionist, doctor, make_booking_request
    ) -> None:
        request = await make_booking_request()

        with pytest.raises(ValidationError) as exc_info:
            await BookingService(async_session).accept(
                request.id,
                BookingAcceptRequest(state="Kerala", mobile="12345"),
                receptionist,
            )

        assert exc_info.value.code == "INVALID_MOBILE"

    @pytest.mark.asyncio
    async def test_busy_slot_is_rejected_before_writing(
        self, async_session, receptionist, doctor, make_booking_request, make_appointment
    ) -> None:
        await make_appointment(doctor, time(10, 15), time(10, 45))
        request = await make_booking_request(provider_id=doctor.id)

        with pytest.raises(ConflictError):
            await BookingService(async_session).accept(
                request.id, DETAILS, receptionist
            )

        # Only the fixture patient exists
        assert await _count(async_session, Patient) == 1
        await async_session.refresh(request)
        assert request.status == BookingRequestStatus.PENDING

    @pytest.mark.asyncio
    async def test_no_provider_available(
        self, async_session, receptionist, make_booking_request
    ) -> None:
        request = await make_booking_request()

        with pytest.raises(NoEligibleResourceError):
            await BookingService(async_session).accept(
                request.id, DETAILS, receptionist
            )

        assert await _count(async_session, Patient) == 0

    @pytest.mark.asyncio
    async def test_second_request_for_same_slot_conflicts(
        self, async_session, receptionist, doctor, make_booking_request
    ) -> None:
        first = await make_booking_request(provider_id=doctor.id)
        second = await make_booking_request(
            provider_id=doctor.id, full_name="Rahul Verma", mobile="9123456780"
        )
        service = BookingService(async_session)

        await service.accept(first.id, DETAILS, receptionist)
        with pytest.raises(ConflictError):
            await service.accept(second.id, DETAILS, receptionist)

        assert await _count(async_session, Patient) == 1
        assert await _count(async_session, Appointment) == 1


class TestCompensation:
    """Failures after the patient write undo it."""

    @pytest.mark.asyncio
    async def test_appointment_failure_deletes_patient(
        self, async_session, receptionist, doctor, make_booking_request
    ) -> None:
        request = await make_booking_request()

        with patch.object(
            BookingService,
            "_write_appointment",
            side_effect=PersistenceError("insert failed"),
        ):
            with pytest.raises(PersistenceError):
                await BookingService(async_session).accept(
                    request.id, DETAILS, receptionist
                )

        assert await _count(async_session, Patient) == 0
        assert await _count(async_session, Appointment) == 0
        await async_session.refresh(request)
        assert request.status == BookingRequestStatus.PENDING

    @pytest.mark.asyncio
    async def test_provider_deactivated_mid_flight(
        self, async_session, receptionist, doctor, make_booking_request
    ) -> None:
        request = await make_booking_request(provider_id=doctor.id)
        doctor_id = doctor.id
        service = BookingService(async_session)
        real_register = service.registrar.register

        async def register_then_deactivate(fields, created_by=None):
            patient = await real_register(fields, created_by=created_by)
            await async_session.execute(
                update(User).where(User.id == doctor_id).values(is_active=False)
            )
            await async_session.commit()
            return patient

        service.registrar.register = register_then_deactivate

        with pytest.raises(NotFoundError) as exc_info:
            await service.accept(request.id, DETAILS, receptionist)

        assert exc_info.value.code == "PROVIDER_NOT_FOUND"
        assert await _count(async_session, Patient) == 0

    @pytest.mark.asyncio
    async def test_compensation_failure_is_logged_and_original_raised(
        self, async_session, receptionist, doctor, make_booking_request, caplog
    ) -> None:
        request = await make_booking_request()

        with patch.object(
            BookingService,
            "_write_appointment",
            side_effect=PersistenceError("insert failed"),
        ), patch.object(
            BookingService,
            "_delete_patient",
            side_effect=RuntimeError("delete failed"),
        ):
            with caplog.at_level(logging.ERROR, logger="app.booking.saga"):
                with pytest.raises(PersistenceError) as exc_info:
                    await BookingService(async_session).accept(
                        request.id, DETAILS, receptionist
                    )

        assert exc_info.value.message == "insert failed"
        assert "CompensationFailure" in caplog.text
        # The orphan is left for manual cleanup
        assert await _count(async_session, Patient) == 1


class TestPivotFailure:
    """A failure marking the request accepted keeps the booking."""

    @pytest.mark.asyncio
    async def test_mark_accepted_failure_returns_warning(
        self, async_session, receptionist, doctor, make_booking_request
    ) -> None:
        request = await make_booking_request()

        with patch.object(
            BookingService,
            "_mark_accepted",
            side_effect=PersistenceError("update failed"),
        ):
            outcome = await BookingService(async_session).accept(
                request.id, DETAILS, receptionist
            )

        assert outcome.state == BookingState.ACCEPTED_WITH_WARNING
        assert outcome.warning == STALE_REQUEST_WARNING
        assert outcome.message == "Appointment booked with warnings"
        assert await _count(async_session, Patient) == 1
        assert await _count(async_session, Appointment) == 1

    @pytest.mark.asyncio
    async def test_request_processed_concurrently(
        self, async_session, receptionist, doctor, make_booking_request
    ) -> None:
        request = await make_booking_request()
        request_id = request.id
        original_write = BookingService._write_appointment

        async def write_then_race(self, snapshot, **kwargs):
            appointment = await original_write(self, snapshot, **kwargs)
            # Someone else rejects the request in the meantime
            await self.session.execute(
                update(BookingRequest)
                .where(BookingRequest.id == snapshot.id)
                .values(status=BookingRequestStatus.REJECTED)
            )
            await self.session.commit()
            return appointment

        with patch.object(BookingService, "_write_appointment", write_then_race):
            outcome = await BookingService(async_session).accept(
                request_id, DETAILS, receptionist
            )

        assert outcome.state == BookingState.ACCEPTED_WITH_WARNING
        assert outcome.appointment.id is not None

        refreshed = await async_session.get(
            BookingRequest, request_id, populate_existing=True
        )
        assert refreshed.status == BookingRequestStatus.REJECTED
        assert refreshed.appointment_id is None


class TestConcurrentAccept:
    """Two acceptances racing for one provider's slot."""

    @pytest.mark.asyncio
    async def test_only_one_acceptance_books_the_slot(
        self, file_session_maker, future_date
    ) -> None:
        async with file_session_maker() as session:
            doctor = User(
                email="dr.rao@clinicdesk.local",
                full_name="Dr Anita Rao",
                role=UserRole.DOCTOR,
                is_active=True,
            )
            receptionist = User(
                email="frontdesk@clinicdesk.local",
                full_name="Front Desk",
                role=UserRole.RECEPTIONIST,
                is_active=True,
            )
            session.add_all([doctor, receptionist])
            await session.flush()
            requests = [
                BookingRequest(
                    full_name=name,
                    mobile=mobile,
                    gender="female",
                    appointment_date=future_date,
                    start_time=time(10, 0),
                    end_time=time(10, 30),
                    appointment_type=AppointmentType.CONSULT,
                    provider_id=doctor.id,
                    source=BookingSource.PUBLIC_FORM,
                    status=BookingRequestStatus.PENDING,
                )
                for name, mobile in [
                    ("Priya Sharma", "9876543210"),
                    ("Rahul Verma", "9123456780"),
                ]
            ]
            session.add_all(requests)
            await session.commit()
            request_ids = [r.id for r in requests]

        async def accept(request_id: str):
            async with file_session_maker() as session:
                outcome = await BookingService(session).accept(
                    request_id, DETAILS, receptionist
                )
                return outcome.state

        results = await asyncio.gather(
            *(accept(request_id) for request_id in request_ids),
            return_exceptions=True,
        )

        assert sorted(type(r).__name__ for r in results) == [
            "BookingState",
            "ConflictError",
        ]
        assert BookingState.ACCEPTED in results
        async with file_session_maker() as session:
            assert await _count(session, Appointment) == 1
            assert await _count(session, Patient) == 1
