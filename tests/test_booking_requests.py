"""Tests for booking request intake, listing and rejection."""

from datetime import time

import pytest
from sqlalchemy import select

from app.booking.errors import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from app.models.audit_event import AuditEvent
from app.models.scheduling import BookingRequestStatus, BookingSource
from app.schemas.booking import BookingRequestCreate
from app.services.booking import BookingService
from app.services.booking_requests import BookingRequestService, page_count


def _payload(**overrides) -> BookingRequestCreate:
    values = {
        "full_name": "  Priya Sharma ",
        "mobile": "98765 43210",
        "gender": "Female",
        "email": "priya@example.com",
        "appointment_date": "2030-03-10",
        "start_time": "10:00",
        "end_time": "10:30",
        "appointment_type": "follow-up",
        "reason": "Review after surgery",
    }
    values.update(overrides)
    return BookingRequestCreate(**values)


class TestSubmit:
    """Tests for storing new requests."""

    @pytest.mark.asyncio
    async def test_submit_normalizes_and_stores_pending(self, async_session) -> None:
        request = await BookingRequestService(async_session).submit(_payload())

        assert request.status == BookingRequestStatus.PENDING
        assert request.source == BookingSource.PUBLIC_FORM
        assert request.full_name == "Priya Sharma"
        assert request.mobile == "9876543210"
        assert request.gender == "female"
        assert request.start_time == time(10, 0)
        assert request.end_time == time(10, 30)
        assert request.provider_id is None

    @pytest.mark.asyncio
    async def test_submit_records_audit_event(self, async_session) -> None:
        request = await BookingRequestService(async_session).submit(
            _payload(), ip_address="203.0.113.7"
        )

        event = (
            await async_session.execute(
                select(AuditEvent).where(AuditEvent.entity_id == request.id)
            )
        ).scalar_one()
        assert event.action == "booking_request.submit"
        assert event.actor_type == "public"
        assert event.ip_address == "203.0.113.7"

    @pytest.mark.asyncio
    async def test_submit_with_pinned_provider(self, async_session, doctor) -> None:
        request = await BookingRequestService(async_session).submit(
            _payload(provider_id=doctor.id)
        )

        assert request.provider_id == doctor.id

    @pytest.mark.asyncio
    async def test_submit_with_inactive_provider(
        self, async_session, inactive_doctor
    ) -> None:
        with pytest.raises(NotFoundError):
            await BookingRequestService(async_session).submit(
                _payload(provider_id=inactive_doctor.id)
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides,code",
        [
            ({"full_name": "A"}, "INVALID_NAME"),
            ({"mobile": "12345"}, "INVALID_MOBILE"),
            ({"gender": "unknown"}, "INVALID_GENDER"),
            ({"email": "not-an-email"}, "INVALID_EMAIL"),
            ({"appointment_date": "10/03/2030"}, "INVALID_DATE"),
            ({"start_time": "25:00"}, "INVALID_TIME"),
            ({"start_time": "11:00", "end_time": "10:00"}, "INVALID_TIME_RANGE"),
            ({"end_time": None}, "MISSING_FIELDS"),
            ({"appointment_type": "massage"}, "INVALID_APPOINTMENT_TYPE"),
        ],
    )
    async def test_submit_rejects_bad_input(
        self, async_session, overrides, code
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await BookingRequestService(async_session).submit(_payload(**overrides))

        assert exc_info.value.code == code


class TestListRequests:
    """Tests for browsing requests."""

    @pytest.mark.asyncio
    async def test_filter_by_status(self, async_session, make_booking_request) -> None:
        await make_booking_request()
        await make_booking_request(status=BookingRequestStatus.REJECTED)

        items, total = await BookingRequestService(async_session).list_requests(
            status=BookingRequestStatus.PENDING
        )

        assert total == 1
        assert items[0].status == BookingRequestStatus.PENDING

    @pytest.mark.asyncio
    async def test_search_matches_name_or_mobile(
        self, async_session, make_booking_request
    ) -> None:
        await make_booking_request()
        await make_booking_request(full_name="Rahul Verma", mobile="9123456780")
        service = BookingRequestService(async_session)

        by_name, _ = await service.list_requests(search="rahul")
        by_mobile, _ = await service.list_requests(search="98765")

        assert [r.full_name for r in by_name] == ["Rahul Verma"]
        assert [r.full_name for r in by_mobile] == ["Priya Sharma"]

    @pytest.mark.asyncio
    async def test_pagination(self, async_session, make_booking_request) -> None:
        for _ in range(5):
            await make_booking_request()

        items, total = await BookingRequestService(async_session).list_requests(
            page=2, limit=2
        )

        assert total == 5
        assert len(items) == 2

    def test_page_count(self) -> None:
        assert page_count(0, 20) == 0
        assert page_count(21, 20) == 2
        assert page_count(40, 20) == 2


class TestReject:
    """Tests for rejecting requests."""

    @pytest.mark.asyncio
    async def test_reject_keeps_request_with_reason(
        self, async_session, receptionist, make_booking_request
    ) -> None:
        request = await make_booking_request()

        rejected = await BookingService(async_session).reject(
            request.id, receptionist, reason="Clinic closed that day"
        )

        assert rejected.id == request.id
        assert rejected.status == BookingRequestStatus.REJECTED
        assert rejected.rejection_reason == "Clinic closed that day"
        assert rejected.processed_by == receptionist.id
        assert rejected.processed_at is not None

    @pytest.mark.asyncio
    async def test_reject_requires_permission(
        self, async_session, nurse, make_booking_request
    ) -> None:
        request = await make_booking_request()

        with pytest.raises(PermissionDeniedError):
            await BookingService(async_session).reject(request.id, nurse)

    @pytest.mark.asyncio
    async def test_reject_twice_fails(
        self, async_session, receptionist, make_booking_request
    ) -> None:
        request = await make_booking_request()
        service = BookingService(async_session)
        await service.reject(request.id, receptionist)

        with pytest.raises(InvalidStateError) as exc_info:
            await service.reject(request.id, receptionist)

        assert exc_info.value.message == "Request has already been rejected"
