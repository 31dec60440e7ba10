"""Provider availability endpoints."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from app.api.deps import DbSession, require_permissions
from app.booking.validation import parse_time_range
from app.models.user import User
from app.schemas.appointment import ConflictRead, ProviderAvailability
from app.services.rbac import Permission
from app.services.scheduling import SchedulingService

router = APIRouter()


@router.get("/available", response_model=list[ProviderAvailability])
async def list_available_providers(
    session: DbSession,
    user: Annotated[User, Depends(require_permissions(Permission.PROVIDERS_VIEW))],
    on_date: Annotated[date, Query(alias="date")],
    start_time: Annotated[str, Query(description="HH:MM")],
    end_time: Annotated[str, Query(description="HH:MM")],
) -> list[ProviderAvailability]:
    """Eligible providers with whether the slot is free for each."""
    start, end = parse_time_range(start_time, end_time)
    verdicts = await SchedulingService(session).available_providers(on_date, start, end)
    return [
        ProviderAvailability(
            provider_id=provider.id,
            full_name=provider.full_name,
            role=str(getattr(provider.role, "value", provider.role)),
            department=provider.department,
            available=not check.has_conflict,
            conflict=ConflictRead(**check.first.to_dict()) if check.first else None,
        )
        for provider, check in verdicts
    ]
