"""Patient identifier allocation and registration.

Patient codes look like ``PAT-20250114-0007``: a prefix, the creation
date and a per-day sequence. Allocation peeks at the highest code issued
today without locking, so two concurrent registrations can pick the same
candidate. The unique index on ``patients.patient_code`` catches that,
and registration retries with a fresh candidate.
"""

import logging
from collections.abc import Callable, Mapping
from datetime import date
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.booking.errors import AllocationExhaustedError, PersistenceError
from app.core.config import settings
from app.models.patient import Patient, PatientStatus
from app.utils.time import today

logger = logging.getLogger(__name__)

# PostgreSQL unique_violation
UNIQUE_VIOLATION_SQLSTATE = "23505"

SEQUENCE_WIDTH = 4

# Columns a registration may set on the patient row
PATIENT_FIELDS = (
    "full_name",
    "email",
    "mobile",
    "gender",
    "date_of_birth",
    "country",
    "state",
    "city",
    "address",
    "postal_code",
    "emergency_contact",
    "emergency_phone",
    "medical_history",
    "current_medications",
    "allergies",
    "insurance_provider",
    "insurance_number",
)


class PatientCodeCollision(Exception):
    """Raised when an insert loses the race for a patient code."""

    def __init__(self, patient_code: str):
        super().__init__(f"Patient code already taken: {patient_code}")
        self.patient_code = patient_code


def is_patient_code_collision(error: IntegrityError) -> bool:
    """Whether an IntegrityError is a duplicate ``patient_code``.

    Recognises the PostgreSQL SQLSTATE (asyncpg and psycopg expose it
    differently) and SQLite's message. Other unique violations, such as
    a duplicate email, are not collisions and must not be retried.
    """
    orig = error.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    message = str(orig) if orig is not None else str(error)

    is_unique_violation = (
        sqlstate == UNIQUE_VIOLATION_SQLSTATE
        or "UNIQUE constraint failed" in message
        or "duplicate key value" in message
    )
    return is_unique_violation and "patient_code" in message


class PatientIdAllocator:
    """Proposes the next patient code for today."""

    def __init__(
        self,
        session: AsyncSession,
        prefix: str | None = None,
        clock: Callable[[], date] = today,
    ):
        self.session = session
        self.prefix = prefix or settings.patient_id_prefix
        self.clock = clock

    def day_prefix(self, day: date) -> str:
        return f"{self.prefix}-{day:%Y%m%d}-"

    async def allocate(self) -> str:
        """Return a candidate code one past today's highest.

        No row is written and nothing is locked; the candidate is only
        reserved once a patient insert using it commits.

        Raises:
            PersistenceError: If existing codes cannot be read
        """
        day_prefix = self.day_prefix(self.clock())

        # Longer codes first so sequences past 9999 still sort correctly
        query = (
            select(Patient.patient_code)
            .where(Patient.patient_code.like(f"{day_prefix}%"))
            .order_by(
                func.length(Patient.patient_code).desc(),
                Patient.patient_code.desc(),
            )
            .limit(1)
        )
        try:
            result = await self.session.execute(query)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read patient codes: {e}") from e

        last_code = result.scalar_one_or_none()
        next_sequence = 1
        if last_code:
            suffix = last_code[len(day_prefix):]
            if suffix.isdigit():
                next_sequence = int(suffix) + 1

        return f"{day_prefix}{next_sequence:0{SEQUENCE_WIDTH}d}"


class PatientRegistrar:
    """Inserts patients, retrying when a code collides."""

    def __init__(
        self,
        session: AsyncSession,
        allocator: PatientIdAllocator | None = None,
    ):
        self.session = session
        self.allocator = allocator or PatientIdAllocator(session)

    async def register(
        self,
        fields: Mapping[str, Any],
        created_by: str | None = None,
    ) -> Patient:
        """Create and commit a patient with a freshly allocated code.

        Args:
            fields: Validated patient fields (unknown keys are ignored)
            created_by: Staff user registering the patient

        Returns:
            The committed patient

        Raises:
            AllocationExhaustedError: If every attempt collided
            PersistenceError: On any other database failure
        """
        values = {name: fields[name] for name in PATIENT_FIELDS if name in fields}
        if not values.get("country"):
            values["country"] = settings.default_country

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(PatientCodeCollision),
            stop=stop_after_attempt(settings.patient_id_max_attempts),
            wait=wait_exponential(multiplier=settings.patient_id_backoff_seconds),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    patient = await self._insert(values, created_by)
        except PatientCodeCollision as e:
            logger.error(
                f"Patient code allocation exhausted after "
                f"{settings.patient_id_max_attempts} attempts (last: {e.patient_code})"
            )
            raise AllocationExhaustedError(
                "Could not allocate a patient ID. Please try again.",
            ) from e

        return patient

    async def _insert(self, values: dict[str, Any], created_by: str | None) -> Patient:
        code = await self.allocator.allocate()
        patient = Patient(
            patient_code=code,
            status=PatientStatus.ACTIVE,
            created_by=created_by,
            **values,
        )
        self.session.add(patient)

        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            if is_patient_code_collision(e):
                logger.warning(f"Patient code {code} already taken")
                raise PatientCodeCollision(code) from e
            raise PersistenceError(f"Failed to create patient: {e.orig}") from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError(f"Failed to create patient: {e}") from e

        await self.session.refresh(patient)
        logger.info(
            f"Registered patient {code}",
            extra={"patient_id": patient.id},
        )
        return patient
