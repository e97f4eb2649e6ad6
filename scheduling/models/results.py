"""
Operation Results

Every scheduling operation returns one of these variants instead of raising
for expected outcomes. Callers branch with ``isinstance``. Only collaborator
failures (catalog or persistence) are raised, as ``UpstreamUnavailable``.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Generic, List, TypeVar, Union

from scheduling.models.domain import Appointment, TimeSlot, WaitlistRequest

T = TypeVar("T")


class UpstreamUnavailable(Exception):
    """The catalog or persistence collaborator failed. Propagated as-is."""
    pass


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class SlotNoLongerAvailable:
    """Lost a booking race or picked a slot that cannot be booked; re-list slots."""

    start_time: datetime
    reason: str = "The selected time is no longer available"


@dataclass(frozen=True)
class InvalidStateTransition:
    entity_id: str
    current: str
    attempted: str

    @property
    def reason(self) -> str:
        return f"Cannot {self.attempted} {self.entity_id} while it is {self.current}"


@dataclass(frozen=True)
class NotFound:
    entity: str
    entity_id: str

    @property
    def reason(self) -> str:
        return f"{self.entity} {self.entity_id} not found"


@dataclass(frozen=True)
class NoAvailabilityWithinHorizon:
    from_date: date
    horizon_days: int

    @property
    def reason(self) -> str:
        return (
            f"No availability within {self.horizon_days} days of {self.from_date.isoformat()}"
        )


SlotsResult = Union[Ok[List[TimeSlot]], NotFound]
NextDateResult = Union[Ok[date], NoAvailabilityWithinHorizon, NotFound]
BookResult = Union[Ok[Appointment], SlotNoLongerAvailable, NotFound]
CancelResult = Union[Ok[Appointment], NotFound, InvalidStateTransition]
RescheduleResult = Union[
    Ok[Appointment], SlotNoLongerAvailable, NotFound, InvalidStateTransition
]
WaitlistResult = Union[Ok[WaitlistRequest], NotFound, InvalidStateTransition]
WaitlistBookResult = Union[
    Ok[Appointment], SlotNoLongerAvailable, NotFound, InvalidStateTransition
]

Failure = Union[
    SlotNoLongerAvailable, InvalidStateTransition, NotFound, NoAvailabilityWithinHorizon
]
