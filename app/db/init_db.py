"""Database initialization utilities."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.base import Base
from app.db.session import engine
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)


async def create_tables() -> None:
    """Create all database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def create_initial_admin(session: AsyncSession) -> User | None:
    """Create initial admin user if none exists.

    The account has no credentials here; the identity provider owns
    sign-in and issues tokens whose subject is this user's id.

    Args:
        session: Database session

    Returns:
        Created admin user or None if admin already exists
    """
    result = await session.execute(
        select(User).where(User.role == UserRole.SUPER_ADMIN).limit(1)
    )
    existing_admin = result.scalar_one_or_none()

    if existing_admin:
        logger.info("Admin user already exists, skipping creation")
        return None

    admin = User(
        email="admin@clinicdesk.local",
        full_name="System Admin",
        role=UserRole.SUPER_ADMIN,
        is_active=True,
    )
    session.add(admin)
    await session.commit()
    await session.refresh(admin)

    logger.info(f"Created initial admin user: {admin.email}")
    return admin


async def init_db(session: AsyncSession) -> None:
    """Initialize database with tables and seed data."""
    await create_tables()
    await create_initial_admin(session)
