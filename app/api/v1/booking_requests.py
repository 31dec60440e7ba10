"""Staff endpoints for reviewing booking requests."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from app.api.deps import CurrentUser, DbSession, get_client_ip, require_permissions
from app.booking.validation import parse_enum
from app.models.scheduling import BookingRequestStatus, BookingSource
from app.models.user import User
from app.schemas.booking import (
    BookingAcceptData,
    BookingAcceptRequest,
    BookingAcceptResponse,
    BookingRejectRequest,
    BookingRequestCreate,
    BookingRequestList,
    BookingRequestRead,
)
from app.services.booking import BookingService
from app.services.booking_requests import BookingRequestService, page_count
from app.services.rbac import Permission

router = APIRouter()


# ============================================================================
# Queries
# ============================================================================


@router.get("", response_model=BookingRequestList)
async def list_booking_requests(
    session: DbSession,
    user: Annotated[User, Depends(require_permissions(Permission.BOOKINGS_VIEW))],
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    search: str | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> BookingRequestList:
    """List booking requests, newest first."""
    status_value = (
        parse_enum(BookingRequestStatus, status_filter, "status") if status_filter else None
    )
    items, total = await BookingRequestService(session).list_requests(
        status=status_value,
        search=search,
        page=page,
        limit=limit,
    )
    return BookingRequestList(
        items=[BookingRequestRead.model_validate(item) for item in items],
        total=total,
        page=page,
        limit=limit,
        pages=page_count(total, limit),
    )


@router.get("/{request_id}", response_model=BookingRequestRead)
async def get_booking_request(
    request_id: UUID,
    session: DbSession,
    user: Annotated[User, Depends(require_permissions(Permission.BOOKINGS_VIEW))],
) -> BookingRequestRead:
    """Get a booking request."""
    booking_request = await BookingRequestService(session).get(str(request_id))
    return BookingRequestRead.model_validate(booking_request)


# ============================================================================
# Staff submission and processing
# ============================================================================


@router.post("", response_model=BookingRequestRead, status_code=status.HTTP_201_CREATED)
async def create_booking_request(
    payload: BookingRequestCreate,
    request: Request,
    session: DbSession,
    user: Annotated[User, Depends(require_permissions(Permission.BOOKINGS_CREATE))],
) -> BookingRequestRead:
    """Record a booking request taken by staff (phone, walk-in)."""
    booking_request = await BookingRequestService(session).submit(
        payload,
        source=BookingSource.STAFF,
        actor_id=user.id,
        ip_address=get_client_ip(request),
    )
    return BookingRequestRead.model_validate(booking_request)


@router.post(
    "/{request_id}/accept",
    response_model=BookingAcceptResponse,
    status_code=status.HTTP_201_CREATED,
)
async def accept_booking_request(
    request_id: UUID,
    session: DbSession,
    user: CurrentUser,
    payload: BookingAcceptRequest | None = None,
) -> BookingAcceptResponse:
    """Accept a request: register the patient and book the appointment.

    Permission is checked by the booking service's gate.
    """
    outcome = await BookingService(session).accept(
        str(request_id), payload or BookingAcceptRequest(), user
    )
    return BookingAcceptResponse(
        message=outcome.message,
        warning=outcome.warning,
        data=BookingAcceptData(
            booking_request_id=outcome.booking_request_id,
            patient_id=outcome.patient.id,
            patient_code=outcome.patient.patient_code,
            appointment_id=outcome.appointment.id,
            provider_id=outcome.provider_id,
            auto_assigned=outcome.auto_assigned,
            state=outcome.state.value,
        ),
    )


@router.post("/{request_id}/reject", response_model=BookingRequestRead)
async def reject_booking_request(
    request_id: UUID,
    session: DbSession,
    user: CurrentUser,
    payload: BookingRejectRequest | None = None,
) -> BookingRequestRead:
    """Reject a pending request. The request is kept, marked rejected."""
    booking_request = await BookingService(session).reject(
        str(request_id), user, reason=payload.reason if payload else None
    )
    return BookingRequestRead.model_validate(booking_request)
