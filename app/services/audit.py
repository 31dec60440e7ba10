"""Audit event service for append-only audit logging."""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import audit_logger
from app.models.audit_event import ActorType, AuditEvent


async def write_audit_event(
    session: AsyncSession,
    actor_type: ActorType,
    actor_id: str | None,
    action: str,
    entity_type: str,
    entity_id: str | None,
    metadata: dict[str, Any] | None = None,
    action_category: str | None = None,
    description: str | None = None,
    ip_address: str | None = None,
    request_id: str | None = None,
    commit: bool = True,
) -> AuditEvent:
    """Write an audit event to the database.

    This is the primary function for recording audit events.
    Events are append-only and cannot be modified or deleted.

    Args:
        session: Database session
        actor_type: Type of actor (system, staff, public)
        actor_id: ID of the staff user, None for public and system actions
        action: Action performed (e.g., "booking_request.accept")
        entity_type: Type of entity affected (e.g., "booking_request")
        entity_id: ID of the affected entity
        metadata: Additional context as JSON
        action_category: Category of action (booking, scheduling)
        description: Human-readable description
        ip_address: Client IP address
        request_id: Request correlation ID
        commit: Commit immediately; pass False to join the caller's
            pending write so both land in one commit

    Returns:
        Created AuditEvent instance
    """
    event = AuditEvent(
        actor_type=actor_type,
        actor_id=actor_id,
        action=action,
        action_category=action_category,
        entity_type=entity_type,
        entity_id=entity_id,
        event_metadata=metadata,
        description=description,
        ip_address=ip_address,
        request_id=request_id,
    )

    session.add(event)
    if commit:
        await session.commit()
        await session.refresh(event)

    # Also log to structured logger
    audit_logger.log(
        action=action,
        actor_type=actor_type.value,
        actor_id=actor_id or "system",
        entity_type=entity_type,
        entity_id=entity_id or "none",
        metadata=metadata,
    )

    return event
