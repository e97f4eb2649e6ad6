from __future__ import annotations

import asyncio
import itertools
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Callable, Iterable

from scheduling.db.memory import InMemoryAppointmentStore
from scheduling.models.domain import (
    Appointment,
    Employee,
    OpeningHours,
    Service,
    TimeSlot,
    Venue,
)

# Monday, 06:00 UTC. Every test venue opens at 09:00 local time.
NOW = datetime(2030, 1, 7, 6, 0, tzinfo=timezone.utc)
SATURDAY_BEFORE = date(2030, 1, 5)
SUNDAY = date(2030, 1, 6)
MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)

VENUE_ID = "v1"
HAIRCUT = "haircut"
BEARD = "beard"
EMRE = "emre"


class FixedClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


def sequential_ids(prefix: str = "id") -> Callable[[], str]:
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"


def make_venue(
    *,
    venue_id: str = VENUE_ID,
    timezone_name: str = "UTC",
    haircut_minutes: int = 60,
    employees: Iterable[Employee] | None = None,
    open_days: Iterable[int] = range(6),
) -> Venue:
    """Venue open Monday-Saturday 09:00-18:00 with a haircut and a beard trim."""
    hours = OpeningHours(time(9, 0), time(18, 0))
    return Venue(
        id=venue_id,
        name="Emre's Barbershop",
        timezone=timezone_name,
        opening_hours={day: hours for day in open_days},
        services={
            HAIRCUT: Service(HAIRCUT, "Haircut", haircut_minutes, Decimal("700.00")),
            BEARD: Service(BEARD, "Beard trim", 30, Decimal("300.00")),
        },
        employees=tuple(employees) if employees is not None else (Employee(EMRE, "Emre"),),
    )


def at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute), tzinfo=timezone.utc)


def slot_at(day: date, hour: int, minute: int = 0, minutes: int = 60) -> TimeSlot:
    start = at(day, hour, minute)
    return TimeSlot(start, start + timedelta(minutes=minutes), True, f"{hour:02d}:{minute:02d}")


class YieldingAppointmentStore(InMemoryAppointmentStore):
    """Hands control back to the event loop before each read and claim."""

    async def get(self, appointment_id: str) -> Appointment | None:
        await asyncio.sleep(0)
        return await super().get(appointment_id)

    async def claim(
        self,
        appointment_id: str,
        venue_id: str,
        employee_id: str,
        start: datetime,
        end: datetime,
    ) -> bool:
        await asyncio.sleep(0)
        return await super().claim(appointment_id, venue_id, employee_id, start, end)

    async def insert_if_free(self, appointment: Appointment) -> bool:
        await asyncio.sleep(0)
        return await super().insert_if_free(appointment)
