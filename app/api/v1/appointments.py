"""Appointment management endpoints for staff."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import DbSession, require_permissions
from app.booking.validation import parse_enum
from app.models.scheduling import AppointmentStatus
from app.models.user import User
from app.schemas.appointment import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentList,
    AppointmentRead,
    AppointmentReassign,
    AppointmentStatusUpdate,
    AppointmentUpdate,
)
from app.services.booking_requests import page_count
from app.services.rbac import Permission
from app.services.scheduling import SchedulingService

router = APIRouter()


@router.get("", response_model=AppointmentList)
async def list_appointments(
    session: DbSession,
    user: Annotated[User, Depends(require_permissions(Permission.APPOINTMENTS_VIEW))],
    on_date: Annotated[date | None, Query(alias="date")] = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    provider_id: UUID | None = None,
    patient_id: UUID | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> AppointmentList:
    """List appointments with optional filters."""
    status_value = (
        parse_enum(AppointmentStatus, status_filter, "status") if status_filter else None
    )
    items, total = await SchedulingService(session).list_appointments(
        on_date=on_date,
        status=status_value,
        provider_id=str(provider_id) if provider_id else None,
        patient_id=str(patient_id) if patient_id else None,
        page=page,
        limit=limit,
    )
    return AppointmentList(
        items=[AppointmentRead.model_validate(item) for item in items],
        total=total,
        page=page,
        limit=limit,
        pages=page_count(total, limit),
    )


@router.post("", response_model=AppointmentRead, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    payload: AppointmentCreate,
    session: DbSession,
    user: Annotated[User, Depends(require_permissions(Permission.APPOINTMENTS_CREATE))],
) -> AppointmentRead:
    """Book an appointment for an existing patient."""
    appointment = await SchedulingService(session).create_appointment(payload, user.id)
    return AppointmentRead.model_validate(appointment)


@router.get("/{appointment_id}", response_model=AppointmentRead)
async def get_appointment(
    appointment_id: UUID,
    session: DbSession,
    user: Annotated[User, Depends(require_permissions(Permission.APPOINTMENTS_VIEW))],
) -> AppointmentRead:
    """Get an appointment."""
    appointment = await SchedulingService(session).get_appointment(str(appointment_id))
    return AppointmentRead.model_validate(appointment)


@router.patch("/{appointment_id}", response_model=AppointmentRead)
async def update_appointment(
    appointment_id: UUID,
    payload: AppointmentUpdate,
    session: DbSession,
    user: Annotated[User, Depends(require_permissions(Permission.APPOINTMENTS_EDIT))],
) -> AppointmentRead:
    """Edit date, time, provider, type, room or notes."""
    appointment = await SchedulingService(session).update_appointment(
        str(appointment_id), payload, user.id
    )
    return AppointmentRead.model_validate(appointment)


@router.patch("/{appointment_id}/status", response_model=AppointmentRead)
async def update_appointment_status(
    appointment_id: UUID,
    payload: AppointmentStatusUpdate,
    session: DbSession,
    user: Annotated[User, Depends(require_permissions(Permission.APPOINTMENTS_STATUS))],
) -> AppointmentRead:
    """Move an appointment through check-in, progress and completion."""
    appointment = await SchedulingService(session).update_status(
        str(appointment_id), payload.status, user.id
    )
    return AppointmentRead.model_validate(appointment)


@router.post("/{appointment_id}/reassign", response_model=AppointmentRead)
async def reassign_appointment(
    appointment_id: UUID,
    payload: AppointmentReassign,
    session: DbSession,
    user: Annotated[User, Depends(require_permissions(Permission.APPOINTMENTS_REASSIGN))],
) -> AppointmentRead:
    """Move an appointment to another provider."""
    appointment = await SchedulingService(session).reassign(
        str(appointment_id),
        str(payload.new_provider_id) if payload.new_provider_id else None,
        payload.reason,
        user.id,
    )
    return AppointmentRead.model_validate(appointment)


@router.post("/{appointment_id}/cancel", response_model=AppointmentRead)
async def cancel_appointment(
    appointment_id: UUID,
    session: DbSession,
    user: Annotated[User, Depends(require_permissions(Permission.APPOINTMENTS_CANCEL))],
    payload: AppointmentCancel | None = None,
) -> AppointmentRead:
    """Cancel an appointment and release its slot."""
    appointment = await SchedulingService(session).cancel(
        str(appointment_id), payload.reason if payload else None, user.id
    )
    return AppointmentRead.model_validate(appointment)
