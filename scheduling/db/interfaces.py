"""
Persistence Interfaces

Narrow store contracts used by the scheduling engine. Both the in-memory and
the SQL implementations honor the same atomic check-and-set rules.

Employee occupancy is tracked as fixed-size claim blocks keyed by
(venue, employee, block start). Claiming a time range takes every block it
touches in a single conditional write, so two overlapping appointments for one
employee can never both succeed.
"""

from datetime import date, datetime, timedelta, timezone
from typing import List, Optional, Protocol

from scheduling.models.domain import (
    Appointment,
    AppointmentStatus,
    WaitlistRequest,
    WaitlistStatus,
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def occupancy_blocks(start: datetime, end: datetime, quantum_minutes: int) -> List[datetime]:
    """
    Block starts covering [start, end), aligned to the quantum.

    Args:
        start: Interval start (aware)
        end: Interval end (aware), after start
        quantum_minutes: Block size in minutes

    Returns:
        Ascending list of aware UTC block starts
    """
    if end <= start:
        raise ValueError("Occupancy interval must have a positive length")
    quantum = timedelta(minutes=quantum_minutes)
    offset = (start.astimezone(timezone.utc) - _EPOCH) // quantum
    block = _EPOCH + offset * quantum
    blocks = []
    while block < end:
        blocks.append(block)
        block += quantum
    return blocks


class AppointmentStore(Protocol):
    async def get(self, appointment_id: str) -> Optional[Appointment]:
        ...

    async def list_for_user(self, user_id: str) -> List[Appointment]:
        ...

    async def list_for_employee(
        self,
        venue_id: str,
        employee_id: str,
        start: datetime,
        end: datetime,
    ) -> List[Appointment]:
        """Non-cancelled appointments of the employee overlapping [start, end)."""
        ...

    async def insert_if_free(self, appointment: Appointment) -> bool:
        """
        Claim the appointment's interval and insert it in one atomic write.

        Returns False (and writes nothing) if any part of the interval is
        already claimed for the same venue and employee.
        """
        ...

    async def claim(
        self,
        appointment_id: str,
        venue_id: str,
        employee_id: str,
        start: datetime,
        end: datetime,
    ) -> bool:
        """
        Claim [start, end) for an existing appointment.

        Blocks already held by the same appointment are re-tagged to the new
        start instead of conflicting. Returns False if another appointment
        holds any block.
        """
        ...

    async def release(self, appointment_id: str, start: datetime) -> None:
        """Release the blocks the appointment holds for the interval starting at `start`."""
        ...

    async def set_status(
        self,
        appointment_id: str,
        expected: AppointmentStatus,
        new: AppointmentStatus,
    ) -> bool:
        """
        Conditionally change status. Moving to CANCELLED releases every block
        the appointment holds in the same write.
        """
        ...

    async def move(
        self,
        appointment_id: str,
        expected_start: datetime,
        new_start: datetime,
    ) -> bool:
        """Conditionally update scheduled_at of an UPCOMING appointment."""
        ...


class WaitlistStore(Protocol):
    async def insert(self, request: WaitlistRequest) -> None:
        ...

    async def get(self, request_id: str) -> Optional[WaitlistRequest]:
        ...

    async def list_for_user(self, user_id: str) -> List[WaitlistRequest]:
        ...

    async def list_by_status(self, status: WaitlistStatus) -> List[WaitlistRequest]:
        ...

    async def list_for_date(
        self,
        venue_id: str,
        service_id: str,
        preferred_date: date,
    ) -> List[WaitlistRequest]:
        ...

    async def set_status(
        self,
        request_id: str,
        expected: WaitlistStatus,
        new: WaitlistStatus,
        appointment_id: Optional[str] = None,
    ) -> bool:
        ...

    async def mark_notified(self, request_id: str, notified_at: datetime) -> None:
        ...
