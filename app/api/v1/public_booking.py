"""Public booking form endpoints.

Unauthenticated: anyone can submit a booking request and later check its
status by id. Both routes are rate limited by ``RateLimitMiddleware``.
"""

from uuid import UUID

from fastapi import APIRouter, Request, status
from pydantic import BaseModel

from app.api.deps import DbSession, get_client_ip
from app.models.scheduling import BookingSource
from app.schemas.booking import BookingRequestCreate, BookingRequestStatusRead
from app.services.booking_requests import BookingRequestService

router = APIRouter()


class PublicSubmissionResponse(BaseModel):
    """Acknowledgement returned to the public form."""

    success: bool = True
    message: str
    data: BookingRequestStatusRead


@router.post(
    "",
    response_model=PublicSubmissionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a booking request",
)
async def submit_booking_request(
    payload: BookingRequestCreate,
    request: Request,
    session: DbSession,
) -> PublicSubmissionResponse:
    """Submit a booking request from the public form."""
    service = BookingRequestService(session)
    booking_request = await service.submit(
        payload,
        source=BookingSource.PUBLIC_FORM,
        ip_address=get_client_ip(request),
    )
    return PublicSubmissionResponse(
        message="Appointment request submitted. The clinic will contact you to confirm.",
        data=BookingRequestStatusRead.model_validate(booking_request),
    )


@router.get(
    "/{request_id}",
    response_model=BookingRequestStatusRead,
    summary="Check booking request status",
)
async def get_booking_request_status(
    request_id: UUID,
    session: DbSession,
) -> BookingRequestStatusRead:
    """Return the status of a submitted request, without personal details."""
    booking_request = await BookingRequestService(session).get(str(request_id))
    return BookingRequestStatusRead.model_validate(booking_request)
