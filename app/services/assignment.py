"""Provider assignment for bookings that did not pin a provider.

The fallback policy is deliberately simple: the first active user holding
an eligible clinical role, ordered by id. It does not balance load or
look at the provider's calendar; the conflict detector runs afterwards
and rejects the booking if that provider is busy.
"""

import logging
from collections.abc import Iterable
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.booking.errors import (
    NoEligibleResourceError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from app.models.user import CLINICAL_PROVIDER_ROLES, User

logger = logging.getLogger(__name__)


def _role_values(roles: Iterable) -> list[str]:
    return [str(getattr(role, "value", role)) for role in roles]


class ResourceAssigner:
    """Chooses and verifies the provider that will own an appointment."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_eligible(
        self,
        eligible_roles: Iterable = CLINICAL_PROVIDER_ROLES,
    ) -> list[User]:
        """Active users in ``eligible_roles``, ordered by id."""
        query = (
            select(User)
            .where(
                User.role.in_(_role_values(eligible_roles)),
                User.is_active == True,
            )
            .order_by(User.id)
        )
        try:
            result = await self.session.execute(query)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load providers: {e}") from e
        return list(result.scalars().all())

    async def assign_fallback(
        self,
        eligible_roles: Iterable = CLINICAL_PROVIDER_ROLES,
        on_date: date | None = None,
    ) -> str:
        """Pick a provider for an unpinned booking.

        Args:
            eligible_roles: Roles allowed to own the appointment
            on_date: Appointment date (informational; not used for ranking)

        Returns:
            Id of the first eligible active provider

        Raises:
            NoEligibleResourceError: If nobody is eligible
        """
        query = (
            select(User.id)
            .where(
                User.role.in_(_role_values(eligible_roles)),
                User.is_active == True,
            )
            .order_by(User.id)
            .limit(1)
        )
        try:
            result = await self.session.execute(query)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load providers: {e}") from e

        provider_id = result.scalar_one_or_none()
        if provider_id is None:
            logger.warning(f"No eligible provider available for {on_date}")
            raise NoEligibleResourceError(
                "No doctor available. Please assign a doctor manually."
            )

        logger.info(f"Auto-assigned provider {provider_id} for {on_date}")
        return provider_id

    async def resolve(
        self,
        provider_id: str,
        eligible_roles: Iterable = CLINICAL_PROVIDER_ROLES,
    ) -> User:
        """Verify a pinned provider can own an appointment.

        Raises:
            NotFoundError: If the provider does not exist or is inactive
            ValidationError: If the user does not hold a clinical role
        """
        try:
            provider = await self.session.get(User, provider_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load provider: {e}") from e

        if provider is None or not provider.is_active:
            raise NotFoundError("Doctor not found or inactive", code="PROVIDER_NOT_FOUND")

        if str(getattr(provider.role, "value", provider.role)) not in _role_values(
            eligible_roles
        ):
            raise ValidationError(
                "Selected user is not a clinical provider",
                code="INVALID_PROVIDER",
            )
        return provider
