"""Pytest configuration and fixtures."""

import os

# Must be set before the app (and its settings) are imported
os.environ.setdefault("ENV", "test")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from collections.abc import AsyncGenerator, Callable, Generator
from datetime import date, time, timedelta
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.security import create_access_token
from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.models.patient import Patient
from app.models.scheduling import (
    Appointment,
    AppointmentStatus,
    AppointmentType,
    BookingRequest,
    BookingRequestStatus,
    BookingSource,
)
from app.models.user import User, UserRole
from app.utils.time import today


# Use SQLite for testing (simpler than spinning up postgres)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def async_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests."""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session_maker() as session:
        yield session


@pytest.fixture(scope="function")
async def file_session_maker(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Session factory over a file database, one connection per session.

    The in-memory engine shares a single connection, so tests that race
    several sessions against each other need this one instead.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'clinicdesk.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    await engine.dispose()


@pytest.fixture(scope="function")
def client(async_session: AsyncSession) -> Generator[TestClient, None, None]:
    """Create FastAPI test client with overridden dependencies."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield async_session

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# =============================================================================
# Dates
# =============================================================================


@pytest.fixture
def future_date() -> date:
    """A date far enough ahead that appointments on it can be cancelled."""
    return today() + timedelta(days=7)


# =============================================================================
# Staff
# =============================================================================


async def _create_user(
    session: AsyncSession,
    email: str,
    role: UserRole,
    full_name: str,
    is_active: bool = True,
) -> User:
    user = User(
        email=email,
        full_name=full_name,
        role=role,
        is_active=is_active,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


@pytest.fixture
async def admin_user(async_session: AsyncSession) -> User:
    """Create a hospital admin."""
    return await _create_user(
        async_session, "admin@clinicdesk.local", UserRole.HOSPITAL_ADMIN, "Admin User"
    )


@pytest.fixture
async def receptionist(async_session: AsyncSession) -> User:
    """Create a front-desk user."""
    return await _create_user(
        async_session, "frontdesk@clinicdesk.local", UserRole.RECEPTIONIST, "Front Desk"
    )


@pytest.fixture
async def doctor(async_session: AsyncSession) -> User:
    """Create an active doctor."""
    return await _create_user(
        async_session, "dr.rao@clinicdesk.local", UserRole.DOCTOR, "Dr Anita Rao"
    )


@pytest.fixture
async def second_doctor(async_session: AsyncSession) -> User:
    """Create another active provider."""
    return await _create_user(
        async_session,
        "dr.mehta@clinicdesk.local",
        UserRole.OPHTHALMOLOGIST,
        "Dr Vikram Mehta",
    )


@pytest.fixture
async def inactive_doctor(async_session: AsyncSession) -> User:
    """Create a deactivated doctor."""
    return await _create_user(
        async_session,
        "dr.gone@clinicdesk.local",
        UserRole.DOCTOR,
        "Dr Former Staff",
        is_active=False,
    )


@pytest.fixture
async def nurse(async_session: AsyncSession) -> User:
    """Create a nurse (cannot process bookings)."""
    return await _create_user(
        async_session, "nurse@clinicdesk.local", UserRole.NURSE, "Nurse Joy"
    )


def create_test_token(user: User) -> str:
    """Create a test JWT token for a staff user."""
    return create_access_token(
        subject=user.id,
        additional_claims={
            "role": str(getattr(user.role, "value", user.role)),
            "actor_type": "staff",
            "email": user.email,
        },
    )


def auth_header(user: User) -> dict[str, str]:
    """Authorization header for ``user``."""
    return {"Authorization": f"Bearer {create_test_token(user)}"}


@pytest.fixture
def headers_for() -> Callable[[User], dict[str, str]]:
    """Build authorization headers for any staff user."""
    return auth_header


@pytest.fixture
def receptionist_headers(receptionist: User) -> dict[str, str]:
    return auth_header(receptionist)


@pytest.fixture
def doctor_headers(doctor: User) -> dict[str, str]:
    return auth_header(doctor)


# =============================================================================
# Records
# =============================================================================


@pytest.fixture
def make_booking_request(
    async_session: AsyncSession, future_date: date
) -> Callable[..., Any]:
    """Factory for pending booking requests (10:00-10:30 by default)."""

    async def _make(**overrides: Any) -> BookingRequest:
        values: dict[str, Any] = {
            "full_name": "Priya Sharma",
            "mobile": "9876543210",
            "email": "priya@example.com",
            "gender": "female",
            "appointment_date": future_date,
            "start_time": time(10, 0),
            "end_time": time(10, 30),
            "appointment_type": AppointmentType.CONSULT,
            "reason": "Blurred vision",
            "source": BookingSource.PUBLIC_FORM,
            "status": BookingRequestStatus.PENDING,
        }
        values.update(overrides)
        request = BookingRequest(**values)
        async_session.add(request)
        await async_session.commit()
        await async_session.refresh(request)
        return request

    return _make


@pytest.fixture
async def patient(async_session: AsyncSession) -> Patient:
    """Create a registered patient."""
    record = Patient(
        patient_code="PAT-20250101-0001",
        full_name="Rahul Verma",
        gender="male",
        mobile="9123456780",
        country="India",
        state="Karnataka",
    )
    async_session.add(record)
    await async_session.commit()
    await async_session.refresh(record)
    return record


@pytest.fixture
def make_appointment(
    async_session: AsyncSession, patient: Patient, future_date: date
) -> Callable[..., Any]:
    """Factory for scheduled appointments belonging to ``patient``."""

    async def _make(
        provider: User,
        start: time,
        end: time,
        on_date: date | None = None,
        status: AppointmentStatus = AppointmentStatus.SCHEDULED,
    ) -> Appointment:
        appointment = Appointment(
            patient_id=patient.id,
            provider_id=provider.id,
            appointment_date=on_date or future_date,
            start_time=start,
            end_time=end,
            appointment_type=AppointmentType.CONSULT,
            status=status,
        )
        async_session.add(appointment)
        await async_session.commit()
        await async_session.refresh(appointment)
        return appointment

    return _make
