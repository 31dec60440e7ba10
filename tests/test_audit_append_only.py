"""Tests for append-only audit events written by booking decisions."""

from datetime import time

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit_event import ActorType, AuditEvent
from app.services.audit import write_audit_event
from app.services.scheduling import SchedulingService

ENTITY_ID = "6f1c2a8e-4b7d-4c1e-9a3f-2d5e8b7c1a90"


@pytest.mark.asyncio
async def test_write_audit_event(async_session: AsyncSession) -> None:
    """Test writing an audit event."""
    event = await write_audit_event(
        session=async_session,
        actor_type=ActorType.SYSTEM,
        actor_id=None,
        action="booking_request.submit",
        entity_type="booking_request",
        entity_id=ENTITY_ID,
        metadata={"source": "public_form"},
        description="Test audit event",
    )

    assert event.id is not None
    assert event.actor_type == ActorType.SYSTEM
    assert event.action == "booking_request.submit"
    assert event.entity_id == ENTITY_ID
    assert event.event_metadata == {"source": "public_form"}
    assert event.created_at is not None


@pytest.mark.asyncio
async def test_uncommitted_event_joins_caller_transaction(
    async_session: AsyncSession,
) -> None:
    """With commit=False the event is only stored once the caller commits."""
    await write_audit_event(
        session=async_session,
        actor_type=ActorType.STAFF,
        actor_id=None,
        action="appointment.cancel",
        entity_type="appointment",
        entity_id=ENTITY_ID,
        commit=False,
    )
    await async_session.rollback()

    result = await async_session.execute(select(AuditEvent))
    assert result.scalars().all() == []


@pytest.mark.asyncio
async def test_scheduling_changes_are_audited(
    async_session: AsyncSession, receptionist, doctor, make_appointment
) -> None:
    """Every appointment mutation leaves an audit trail."""
    appointment = await make_appointment(doctor, time(9, 0), time(9, 30))
    service = SchedulingService(async_session)
    await service.update_status(appointment.id, "checked-in", receptionist.id)
    await service.update_status(appointment.id, "completed", receptionist.id)

    result = await async_session.execute(
        select(AuditEvent)
        .where(AuditEvent.entity_id == appointment.id)
        .order_by(AuditEvent.created_at)
    )
    events = result.scalars().all()

    assert [e.action for e in events] == ["appointment.status", "appointment.status"]
    assert events[-1].event_metadata == {"from": "checked-in", "to": "completed"}
    assert all(e.actor_id == receptionist.id for e in events)
