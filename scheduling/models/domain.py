"""
Domain Model

Value types shared by the scheduling components: catalog types supplied by the
venue catalog, time slots, appointments, and waitlist requests.
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from enum import Enum
from functools import cached_property
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo

WEEKDAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)


def utcnow() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AppointmentStatus(str, Enum):
    UPCOMING = "UPCOMING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class WaitlistStatus(str, Enum):
    PENDING = "PENDING"
    FULFILLED = "FULFILLED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class TimeRange(str, Enum):
    """Coarse time-of-day band used by waitlist requests."""

    ANY = "ANY"
    MORNING = "MORNING"
    AFTERNOON = "AFTERNOON"
    EVENING = "EVENING"

    def contains(self, local_time: time) -> bool:
        """
        Check whether a venue-local slot start falls inside this band.

        MORNING is [opening, 12:00), AFTERNOON is [12:00, 17:00) and
        EVENING is [17:00, closing). Opening and closing are already
        enforced by the slot grid.
        """
        if self is TimeRange.MORNING:
            return local_time < NOON
        if self is TimeRange.AFTERNOON:
            return NOON <= local_time < EVENING_START
        if self is TimeRange.EVENING:
            return local_time >= EVENING_START
        return True


NOON = time(12, 0)
EVENING_START = time(17, 0)


# ---------------------------------------------------------------------------
# Catalog types (read-only)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OpeningHours:
    open_time: time
    close_time: time

    def __post_init__(self) -> None:
        if self.close_time <= self.open_time:
            raise ValueError(
                f"Closing time {self.close_time} must be after opening time {self.open_time}"
            )


@dataclass(frozen=True)
class Service:
    id: str
    name: str
    duration_minutes: int
    price: Decimal

    def __post_init__(self) -> None:
        if self.duration_minutes <= 0:
            raise ValueError(f"Service {self.id} must have a positive duration")

    @property
    def duration(self) -> timedelta:
        return timedelta(minutes=self.duration_minutes)


@dataclass(frozen=True)
class Employee:
    id: str
    name: str
    # Empty means the employee performs every service of the venue.
    service_ids: FrozenSet[str] = frozenset()

    def performs(self, service_id: str) -> bool:
        return not self.service_ids or service_id in self.service_ids


@dataclass(frozen=True)
class Venue:
    """A bookable venue as returned by the catalog."""

    id: str
    name: str
    timezone: str
    # Weekday (0 = Monday) -> hours; a missing weekday means closed.
    opening_hours: Mapping[int, OpeningHours]
    services: Mapping[str, Service]
    employees: Tuple[Employee, ...] = ()

    @cached_property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def hours_on(self, day: date) -> Optional[OpeningHours]:
        return self.opening_hours.get(day.weekday())

    def service(self, service_id: str) -> Optional[Service]:
        return self.services.get(service_id)

    def employee(self, employee_id: str) -> Optional[Employee]:
        for employee in self.employees:
            if employee.id == employee_id:
                return employee
        return None

    def employees_for(self, service_id: str) -> List[Employee]:
        return [e for e in self.employees if e.performs(service_id)]

    def today(self, now: datetime) -> date:
        """Calendar date in the venue's time zone at instant `now`."""
        return now.astimezone(self.tz).date()

    def local_time(self, instant: datetime) -> time:
        return instant.astimezone(self.tz).time()


# ---------------------------------------------------------------------------
# Scheduling types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TimeSlot:
    """A fixed-duration bookable start time."""

    start_time: datetime
    end_time: datetime
    is_available: bool = True
    label: str = ""  # venue-local HH:MM

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time


@dataclass(frozen=True)
class Appointment:
    """
    A user's appointment.

    Display fields, price and duration are captured at booking time and are
    not touched by later catalog changes.
    """

    id: str
    user_id: str
    venue_id: str
    venue_name: str
    service_id: str
    service_name: str
    employee_id: str
    employee_name: str
    scheduled_at: datetime
    duration_minutes: int
    price: Decimal
    status: AppointmentStatus = AppointmentStatus.UPCOMING
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def ends_at(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration_minutes)


@dataclass(frozen=True)
class WaitlistRequest:
    id: str
    user_id: str
    venue_id: str
    service_id: str
    preferred_date: date
    preferred_time_range: TimeRange = TimeRange.ANY
    status: WaitlistStatus = WaitlistStatus.PENDING
    created_at: Optional[datetime] = None
    notified_at: Optional[datetime] = None
    appointment_id: Optional[str] = None


def parse_opening_hours(entries: List[Dict[str, object]]) -> Dict[int, OpeningHours]:
    """
    Build a weekday map from catalog opening-hour entries.

    Each entry looks like
    ``{"day": "Monday", "isOpen": true, "openTime": "09:00", "closeTime": "18:00"}``.
    Entries that are closed or lack times are left out of the map.
    """
    hours: Dict[int, OpeningHours] = {}
    for entry in entries:
        day_name = str(entry.get("day", "")).strip().capitalize()
        if day_name not in WEEKDAY_NAMES:
            raise ValueError(f"Unknown weekday in opening hours: {entry.get('day')!r}")
        if not entry.get("isOpen") or not entry.get("openTime") or not entry.get("closeTime"):
            continue
        hours[WEEKDAY_NAMES.index(day_name)] = OpeningHours(
            open_time=time.fromisoformat(str(entry["openTime"])),
            close_time=time.fromisoformat(str(entry["closeTime"])),
        )
    return hours
