"""
In-Memory Stores

Process-local implementations of the appointment and waitlist stores. Used by
tests and by the ``memory`` storage backend. Slot claims are guarded by one
asyncio lock per (venue, employee).
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import replace
from datetime import date, datetime
from typing import DefaultDict, Dict, List, Optional, Tuple

from scheduling.db.interfaces import occupancy_blocks
from scheduling.models.domain import (
    Appointment,
    AppointmentStatus,
    WaitlistRequest,
    WaitlistStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

ClaimKey = Tuple[str, str, datetime]  # (venue_id, employee_id, block_start)
ClaimOwner = Tuple[str, datetime]  # (appointment_id, interval start)


class InMemoryAppointmentStore:
    """Appointment store keeping rows and slot claims in dictionaries."""

    def __init__(self, quantum_minutes: int = 5):
        self.quantum_minutes = quantum_minutes
        self._appointments: Dict[str, Appointment] = {}
        self._claims: Dict[ClaimKey, ClaimOwner] = {}
        self._locks: DefaultDict[Tuple[str, str], asyncio.Lock] = defaultdict(asyncio.Lock)

    def _keys(
        self, venue_id: str, employee_id: str, start: datetime, end: datetime
    ) -> List[ClaimKey]:
        return [
            (venue_id, employee_id, block)
            for block in occupancy_blocks(start, end, self.quantum_minutes)
        ]

    async def get(self, appointment_id: str) -> Optional[Appointment]:
        return self._appointments.get(appointment_id)

    async def list_for_user(self, user_id: str) -> List[Appointment]:
        return [a for a in self._appointments.values() if a.user_id == user_id]

    async def list_for_employee(
        self,
        venue_id: str,
        employee_id: str,
        start: datetime,
        end: datetime,
    ) -> List[Appointment]:
        return sorted(
            (
                a
                for a in self._appointments.values()
                if a.venue_id == venue_id
                and a.employee_id == employee_id
                and a.status != AppointmentStatus.CANCELLED
                and a.scheduled_at < end
                and a.ends_at > start
            ),
            key=lambda a: a.scheduled_at,
        )

    async def insert_if_free(self, appointment: Appointment) -> bool:
        async with self._locks[(appointment.venue_id, appointment.employee_id)]:
            keys = self._keys(
                appointment.venue_id,
                appointment.employee_id,
                appointment.scheduled_at,
                appointment.ends_at,
            )
            if any(key in self._claims for key in keys):
                return False
            for key in keys:
                self._claims[key] = (appointment.id, appointment.scheduled_at)
            now = utcnow()
            self._appointments[appointment.id] = replace(
                appointment,
                created_at=appointment.created_at or now,
                updated_at=appointment.updated_at or now,
            )
            return True

    async def claim(
        self,
        appointment_id: str,
        venue_id: str,
        employee_id: str,
        start: datetime,
        end: datetime,
    ) -> bool:
        async with self._locks[(venue_id, employee_id)]:
            keys = self._keys(venue_id, employee_id, start, end)
            for key in keys:
                owner = self._claims.get(key)
                if owner is not None and owner[0] != appointment_id:
                    return False
            for key in keys:
                self._claims[key] = (appointment_id, start)
            return True

    async def release(self, appointment_id: str, start: datetime) -> None:
        appointment = self._appointments.get(appointment_id)
        if appointment is None:
            return
        async with self._locks[(appointment.venue_id, appointment.employee_id)]:
            for key in [k for k, owner in self._claims.items() if owner == (appointment_id, start)]:
                del self._claims[key]

    async def set_status(
        self,
        appointment_id: str,
        expected: AppointmentStatus,
        new: AppointmentStatus,
    ) -> bool:
        appointment = self._appointments.get(appointment_id)
        if appointment is None:
            return False
        async with self._locks[(appointment.venue_id, appointment.employee_id)]:
            current = self._appointments[appointment_id]
            if current.status != expected:
                return False
            if new == AppointmentStatus.CANCELLED:
                for key in [k for k, owner in self._claims.items() if owner[0] == appointment_id]:
                    del self._claims[key]
            self._appointments[appointment_id] = replace(current, status=new, updated_at=utcnow())
            return True

    async def move(
        self,
        appointment_id: str,
        expected_start: datetime,
        new_start: datetime,
    ) -> bool:
        appointment = self._appointments.get(appointment_id)
        if appointment is None:
            return False
        async with self._locks[(appointment.venue_id, appointment.employee_id)]:
            current = self._appointments[appointment_id]
            if (
                current.status != AppointmentStatus.UPCOMING
                or current.scheduled_at != expected_start
            ):
                return False
            self._appointments[appointment_id] = replace(
                current, scheduled_at=new_start, updated_at=utcnow()
            )
            return True

    def claimed_blocks(self, venue_id: str, employee_id: str) -> List[datetime]:
        """Claimed block starts for one employee, ascending."""
        return sorted(
            block
            for (v, e, block) in self._claims
            if v == venue_id and e == employee_id
        )


class InMemoryWaitlistStore:
    """Waitlist store keeping requests in a dictionary."""

    def __init__(self) -> None:
        self._requests: Dict[str, WaitlistRequest] = {}
        self._lock = asyncio.Lock()

    async def insert(self, request: WaitlistRequest) -> None:
        async with self._lock:
            self._requests[request.id] = replace(
                request, created_at=request.created_at or utcnow()
            )

    async def get(self, request_id: str) -> Optional[WaitlistRequest]:
        return self._requests.get(request_id)

    async def list_for_user(self, user_id: str) -> List[WaitlistRequest]:
        return sorted(
            (r for r in self._requests.values() if r.user_id == user_id),
            key=lambda r: (r.preferred_date, r.created_at),
        )

    async def list_by_status(self, status: WaitlistStatus) -> List[WaitlistRequest]:
        return sorted(
            (r for r in self._requests.values() if r.status == status),
            key=lambda r: r.created_at,
        )

    async def list_for_date(
        self,
        venue_id: str,
        service_id: str,
        preferred_date: date,
    ) -> List[WaitlistRequest]:
        return sorted(
            (
                r
                for r in self._requests.values()
                if r.venue_id == venue_id
                and r.service_id == service_id
                and r.preferred_date == preferred_date
            ),
            key=lambda r: r.created_at,
        )

    async def set_status(
        self,
        request_id: str,
        expected: WaitlistStatus,
        new: WaitlistStatus,
        appointment_id: Optional[str] = None,
    ) -> bool:
        async with self._lock:
            current = self._requests.get(request_id)
            if current is None or current.status != expected:
                return False
            self._requests[request_id] = replace(
                current,
                status=new,
                appointment_id=appointment_id or current.appointment_id,
            )
            return True

    async def mark_notified(self, request_id: str, notified_at: datetime) -> None:
        async with self._lock:
            current = self._requests.get(request_id)
            if current is not None:
                self._requests[request_id] = replace(current, notified_at=notified_at)
