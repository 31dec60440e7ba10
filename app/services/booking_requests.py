"""Booking request intake and listing.

Requests arrive from the public booking form or from staff and wait as
``pending`` until a staff member accepts or rejects them through
``BookingService``.
"""

import logging
import math

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.booking.errors import NotFoundError, PersistenceError
from app.booking.validation import (
    normalize_email,
    normalize_gender,
    normalize_mobile,
    parse_date,
    parse_enum,
    parse_time_range,
    validate_name,
)
from app.models.audit_event import ActorType
from app.models.scheduling import (
    AppointmentType,
    BookingRequest,
    BookingRequestStatus,
    BookingSource,
)
from app.schemas.booking import BookingRequestCreate
from app.services.assignment import ResourceAssigner
from app.services.audit import write_audit_event

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class BookingRequestService:
    """Service for submitting and browsing booking requests."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def submit(
        self,
        payload: BookingRequestCreate,
        source: BookingSource = BookingSource.PUBLIC_FORM,
        actor_id: str | None = None,
        ip_address: str | None = None,
    ) -> BookingRequest:
        """Validate and store a new pending booking request.

        Args:
            payload: Submitted form fields
            source: Public form or staff
            actor_id: Staff user submitting on a patient's behalf
            ip_address: Client IP, recorded in the audit trail

        Returns:
            The stored request

        Raises:
            ValidationError: If any field is missing or malformed
            NotFoundError: If the pinned provider does not exist or is inactive
        """
        full_name = validate_name(payload.full_name)
        mobile = normalize_mobile(payload.mobile)
        gender = normalize_gender(payload.gender)
        email = normalize_email(payload.email)
        appointment_date = parse_date(payload.appointment_date)
        start_time, end_time = parse_time_range(payload.start_time, payload.end_time)
        appointment_type = parse_enum(
            AppointmentType, payload.appointment_type, "appointment_type"
        )

        provider_id = None
        if payload.provider_id:
            provider = await ResourceAssigner(self.session).resolve(str(payload.provider_id))
            provider_id = provider.id

        request = BookingRequest(
            full_name=full_name,
            email=email,
            mobile=mobile,
            gender=gender,
            date_of_birth=payload.date_of_birth,
            appointment_date=appointment_date,
            start_time=start_time,
            end_time=end_time,
            appointment_type=appointment_type,
            provider_id=provider_id,
            reason=payload.reason,
            notes=payload.notes,
            source=source,
            status=BookingRequestStatus.PENDING,
        )
        self.session.add(request)

        try:
            await self.session.flush()
            await write_audit_event(
                self.session,
                actor_type=ActorType.STAFF if actor_id else ActorType.PUBLIC,
                actor_id=actor_id,
                action="booking_request.submit",
                action_category="booking",
                entity_type="booking_request",
                entity_id=request.id,
                metadata={"source": source.value},
                ip_address=ip_address,
            )
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError(f"Failed to submit booking request: {e}") from e

        await self.session.refresh(request)
        logger.info(
            f"Booking request {request.id} submitted via {source.value}",
            extra={"booking_request_id": request.id},
        )
        return request

    async def get(self, request_id: str) -> BookingRequest:
        """Get a booking request by id.

        Raises:
            NotFoundError: If it does not exist
        """
        try:
            request = await self.session.get(
                BookingRequest, request_id, populate_existing=True
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load booking request: {e}") from e
        if request is None:
            raise NotFoundError("Appointment request not found")
        return request

    async def list_requests(
        self,
        status: BookingRequestStatus | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[BookingRequest], int]:
        """List booking requests, newest first.

        Args:
            status: Only requests in this status
            search: Case-insensitive match on name, email or mobile
            page: 1-based page number
            limit: Page size, capped at 100

        Returns:
            Tuple of (requests on this page, total matching count)
        """
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        query = select(BookingRequest)
        if status:
            query = query.where(BookingRequest.status == status)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(
                or_(
                    BookingRequest.full_name.ilike(pattern),
                    BookingRequest.email.ilike(pattern),
                    BookingRequest.mobile.ilike(pattern),
                )
            )

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.session.execute(count_query)).scalar_one()

        result = await self.session.execute(
            query.order_by(BookingRequest.created_at.desc())
            .execution_options(populate_existing=True)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total


def page_count(total: int, limit: int) -> int:
    """Number of pages needed for ``total`` items."""
    return math.ceil(total / limit) if limit else 0
