"""
Availability Calculator

Computes the bookable time slots of a venue, service and calendar date, and
scans forward for the next date that still has an open slot.

Slots are laid on a grid that starts at opening time and steps by the service
duration. Occupied slots are reported with ``is_available=False`` rather than
left out, so clients can render a full day.
"""

import logging
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

from scheduling.catalog import Catalog
from scheduling.db.interfaces import AppointmentStore, occupancy_blocks
from scheduling.models.domain import (
    Employee,
    Service,
    TimeRange,
    TimeSlot,
    Venue,
    as_utc,
    utcnow,
)
from scheduling.models.results import (
    NextDateResult,
    NoAvailabilityWithinHorizon,
    NotFound,
    Ok,
    SlotsResult,
)

logger = logging.getLogger(__name__)

Offering = Tuple[Venue, Service, List[Employee]]


async def resolve_offering(
    catalog: Catalog,
    venue_id: str,
    service_id: str,
    employee_id: Optional[str] = None,
) -> Union[Offering, NotFound]:
    """
    Look up a venue, one of its services and the employees who may perform it.

    Args:
        catalog: Catalog collaborator
        venue_id: Venue ID
        service_id: Service ID within the venue
        employee_id: Optional employee; None means any eligible employee

    Returns:
        (venue, service, employees) or NotFound naming the missing entity
    """
    venue = await catalog.get_venue(venue_id)
    if venue is None:
        return NotFound("Venue", venue_id)

    service = venue.service(service_id)
    if service is None:
        return NotFound("Service", service_id)

    if employee_id is None:
        return venue, service, venue.employees_for(service.id)

    employee = venue.employee(employee_id)
    if employee is None or not employee.performs(service.id):
        return NotFound("Employee", employee_id)
    return venue, service, [employee]


def slot_grid(venue: Venue, service: Service, day: date) -> List[TimeSlot]:
    """
    All slot positions of a service on a venue-local date, ignoring occupancy.

    Args:
        venue: Venue providing opening hours and time zone
        service: Service providing the slot duration
        day: Calendar date in the venue's time zone

    Returns:
        Slots ascending by start time; empty when the venue is closed
    """
    hours = venue.hours_on(day)
    if hours is None:
        return []

    tz = venue.tz
    start = datetime.combine(day, hours.open_time, tzinfo=tz).astimezone(timezone.utc)
    closing = datetime.combine(day, hours.close_time, tzinfo=tz).astimezone(timezone.utc)

    slots = []
    while start + service.duration <= closing:
        slots.append(
            TimeSlot(
                start_time=start,
                end_time=start + service.duration,
                label=start.astimezone(tz).strftime("%H:%M"),
            )
        )
        start += service.duration
    return slots


def on_grid(venue: Venue, service: Service, start: datetime) -> bool:
    """Whether `start` is one of the service's slot positions on its local date."""
    start = as_utc(start)
    day = start.astimezone(venue.tz).date()
    return any(slot.start_time == start for slot in slot_grid(venue, service, day))


class AvailabilityCalculator:
    """Read-only availability queries over the catalog and appointment store."""

    def __init__(
        self,
        catalog: Catalog,
        appointments: AppointmentStore,
        horizon_days: int = 60,
        quantum_minutes: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize AvailabilityCalculator.

        Args:
            catalog: Catalog collaborator
            appointments: Appointment store
            horizon_days: How many days the next-available scan covers
            quantum_minutes: Occupancy block size used by the store
            clock: Returns the current aware instant
        """
        self.catalog = catalog
        self.appointments = appointments
        self.horizon_days = horizon_days
        self.quantum_minutes = quantum_minutes
        self.clock = clock

    async def compute_slots(
        self,
        venue_id: str,
        service_id: str,
        day: date,
        employee_id: Optional[str] = None,
    ) -> SlotsResult:
        """
        Compute the slots of a service for one venue-local date.

        Args:
            venue_id: Venue ID
            service_id: Service ID
            day: Calendar date in the venue's time zone
            employee_id: Restrict availability to one employee

        Returns:
            Ok with the slot list (empty for closed or past days), or NotFound
        """
        offering = await resolve_offering(self.catalog, venue_id, service_id, employee_id)
        if isinstance(offering, NotFound):
            return offering

        venue, service, employees = offering
        slots = await self._slots_for(venue, service, employees, day, self.clock())
        logger.debug(
            f"Computed {len(slots)} slots for venue {venue_id} service {service_id} on {day}"
        )
        return Ok(slots)

    async def find_next_available_date(
        self,
        venue_id: str,
        service_id: str,
        from_date: date,
        employee_id: Optional[str] = None,
    ) -> NextDateResult:
        """
        Find the first date on or after `from_date` with an available slot.

        The scan never starts before the venue-local today and stops after
        ``horizon_days`` calendar days.

        Returns:
            Ok with the date, NoAvailabilityWithinHorizon, or NotFound
        """
        offering = await resolve_offering(self.catalog, venue_id, service_id, employee_id)
        if isinstance(offering, NotFound):
            return offering

        venue, service, employees = offering
        now = self.clock()
        start = max(from_date, venue.today(now))

        for offset in range(self.horizon_days):
            day = start + timedelta(days=offset)
            if venue.hours_on(day) is None:
                continue
            slots = await self._slots_for(venue, service, employees, day, now)
            if any(slot.is_available for slot in slots):
                return Ok(day)

        logger.info(
            f"No availability for venue {venue_id} service {service_id} "
            f"within {self.horizon_days} days of {start}"
        )
        return NoAvailabilityWithinHorizon(from_date=start, horizon_days=self.horizon_days)

    async def slots_in_band(
        self,
        venue_id: str,
        service_id: str,
        day: date,
        band: TimeRange = TimeRange.ANY,
    ) -> SlotsResult:
        """Available slots of any eligible employee whose local start lies in `band`."""
        offering = await resolve_offering(self.catalog, venue_id, service_id)
        if isinstance(offering, NotFound):
            return offering

        venue, service, employees = offering
        slots = await self._slots_for(venue, service, employees, day, self.clock())
        return Ok(
            [
                slot
                for slot in slots
                if slot.is_available and band.contains(venue.local_time(slot.start_time))
            ]
        )

    async def free_employees(
        self, venue: Venue, service: Service, start: datetime
    ) -> List[Employee]:
        """Eligible employees with no claimed time over the slot, in catalog order."""
        start = as_utc(start)
        end = start + service.duration
        needed = set(occupancy_blocks(start, end, self.quantum_minutes))

        free = []
        for employee in venue.employees_for(service.id):
            busy = await self._busy_blocks(venue.id, employee.id, start, end)
            if not needed & busy:
                free.append(employee)
        return free

    async def _slots_for(
        self,
        venue: Venue,
        service: Service,
        employees: List[Employee],
        day: date,
        now: datetime,
    ) -> List[TimeSlot]:
        if day < venue.today(now):
            return []
        grid = slot_grid(venue, service, day)
        if not grid:
            return []

        busy: Dict[str, Set[datetime]] = {}
        for employee in employees:
            busy[employee.id] = await self._busy_blocks(
                venue.id, employee.id, grid[0].start_time, grid[-1].end_time
            )

        slots = []
        for slot in grid:
            needed = set(occupancy_blocks(slot.start_time, slot.end_time, self.quantum_minutes))
            available = slot.start_time > now and any(
                not needed & busy[employee.id] for employee in employees
            )
            slots.append(replace(slot, is_available=available))
        return slots

    async def _busy_blocks(
        self, venue_id: str, employee_id: str, start: datetime, end: datetime
    ) -> Set[datetime]:
        appointments = await self.appointments.list_for_employee(
            venue_id, employee_id, start, end
        )
        blocks: Set[datetime] = set()
        for appointment in appointments:
            blocks.update(
                occupancy_blocks(
                    appointment.scheduled_at, appointment.ends_at, self.quantum_minutes
                )
            )
        return blocks
