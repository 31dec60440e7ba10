"""Saga primitives for multi-step booking writes.

Each committed write registers an undo closure. When a later step fails,
the registered closures run in reverse order. A step marked as the pivot
is never undone: once it is reached, the saga can only move forward.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from app.booking.errors import CompensationFailure

logger = logging.getLogger(__name__)

Compensation = Callable[[], Awaitable[None]]


class BookingState(str, Enum):
    """States a booking acceptance passes through."""

    PENDING = "pending"
    VALIDATING = "validating"
    REJECTED = "rejected"
    ALLOCATING_PATIENT = "allocating_patient"
    RESOLVING_RESOURCE = "resolving_resource"
    CHECKING_CONFLICT = "checking_conflict"
    CREATING_APPOINTMENT = "creating_appointment"
    UPDATING_REQUEST = "updating_request"
    ACCEPTED = "accepted"
    ACCEPTED_WITH_WARNING = "accepted_with_warning"
    COMPENSATING = "compensating"
    FAILED = "failed"


TERMINAL_STATES = frozenset(
    {
        BookingState.REJECTED,
        BookingState.ACCEPTED,
        BookingState.ACCEPTED_WITH_WARNING,
        BookingState.FAILED,
    }
)


@dataclass
class CompensationStep:
    """Undo action for one committed write."""

    name: str
    compensate: Compensation
    entity_id: str | None = None


class Saga:
    """Ordered compensation stack with logged state transitions.

    Usage:
        saga = Saga("accept", booking_request_id=request_id)
        saga.transition(BookingState.ALLOCATING_PATIENT)
        patient = await write_patient()
        saga.register("delete_patient", undo, entity_id=patient.id)
        ...
        await saga.compensate(error)
    """

    def __init__(self, name: str, booking_request_id: str | None = None):
        self.name = name
        self.booking_request_id = booking_request_id
        self.state = BookingState.PENDING
        self.history: list[BookingState] = [BookingState.PENDING]
        self.failures: list[CompensationFailure] = []
        self._steps: list[CompensationStep] = []

    @property
    def pending_compensations(self) -> list[str]:
        return [step.name for step in self._steps]

    def transition(self, state: BookingState) -> None:
        """Move to ``state`` and log the transition."""
        previous = self.state
        self.state = state
        self.history.append(state)
        logger.info(
            f"Saga {self.name}: {previous.value} -> {state.value}",
            extra={"booking_request_id": self.booking_request_id},
        )

    def register(
        self,
        name: str,
        compensate: Compensation,
        entity_id: str | None = None,
    ) -> None:
        """Push the undo action for a write that has just committed."""
        self._steps.append(CompensationStep(name, compensate, entity_id))

    def pivot(self) -> None:
        """Forget registered compensations; later failures do not undo."""
        self._steps.clear()

    async def compensate(self, error: BaseException) -> list[CompensationFailure]:
        """Run registered compensations in reverse order.

        A failing compensation is logged and recorded, and the remaining
        ones still run. The caller re-raises ``error`` afterwards.

        Args:
            error: The failure that triggered compensation

        Returns:
            Compensation failures that need manual cleanup
        """
        if self._steps:
            self.transition(BookingState.COMPENSATING)

        while self._steps:
            step = self._steps.pop()
            try:
                await step.compensate()
                logger.info(
                    f"Saga {self.name}: compensated {step.name} ({step.entity_id})",
                    extra={"booking_request_id": self.booking_request_id},
                )
            except Exception as exc:
                failure = CompensationFailure(
                    f"Compensation {step.name} failed: {exc}",
                    original=error,
                    entity_id=step.entity_id,
                )
                self.failures.append(failure)
                logger.error(
                    f"CompensationFailure: saga={self.name} step={step.name} "
                    f"entity_id={step.entity_id} original_error={error!r} "
                    f"compensation_error={exc!r}",
                    extra={
                        "booking_request_id": self.booking_request_id,
                        "patient_id": step.entity_id,
                    },
                    exc_info=True,
                )

        self.transition(BookingState.FAILED)
        return self.failures
