"""
Booking State Machine

Business logic for creating, cancelling and rescheduling appointments.

Lifecycle: UPCOMING -> CANCELLED (explicit) or UPCOMING -> COMPLETED (time
passes). Both end states are terminal. COMPLETED is never written; it is
derived at read time by ``effective_status``.
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from scheduling.catalog import Catalog
from scheduling.db.interfaces import AppointmentStore
from scheduling.models.domain import (
    Appointment,
    AppointmentStatus,
    TimeSlot,
    as_utc,
    new_id,
    utcnow,
)
from scheduling.models.results import (
    BookResult,
    CancelResult,
    InvalidStateTransition,
    NotFound,
    Ok,
    RescheduleResult,
    SlotNoLongerAvailable,
)
from scheduling.services.availability import (
    AvailabilityCalculator,
    on_grid,
    resolve_offering,
)

logger = logging.getLogger(__name__)


def is_past(appointment: Appointment, now: datetime) -> bool:
    """An appointment is past once its end time has been reached."""
    return appointment.ends_at <= now


def effective_status(appointment: Appointment, now: datetime) -> AppointmentStatus:
    if appointment.status == AppointmentStatus.UPCOMING and is_past(appointment, now):
        return AppointmentStatus.COMPLETED
    return appointment.status


class BookingStateMachine:
    """
    Service for managing appointment lifecycle.

    Every write goes through a conditional store operation, so two callers
    racing for one slot can never both win.
    """

    def __init__(
        self,
        catalog: Catalog,
        appointments: AppointmentStore,
        availability: AvailabilityCalculator,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = new_id,
    ):
        """
        Initialize BookingStateMachine.

        Args:
            catalog: Catalog collaborator
            appointments: Appointment store
            availability: Calculator used to find free employees
            clock: Returns the current aware instant
            id_factory: Produces new appointment IDs
        """
        self.catalog = catalog
        self.appointments = appointments
        self.availability = availability
        self.clock = clock
        self.id_factory = id_factory

    async def create(
        self,
        user_id: str,
        venue_id: str,
        service_id: str,
        employee_id: Optional[str],
        slot: TimeSlot,
        notes: Optional[str] = None,
    ) -> BookResult:
        """
        Book a slot for a user.

        Args:
            user_id: Opaque user identifier
            venue_id: Venue ID
            service_id: Service ID
            employee_id: Employee to book, or None for any eligible employee
            slot: Slot as returned by the availability calculator
            notes: Optional free-text notes

        Returns:
            Ok with the new appointment, SlotNoLongerAvailable, or NotFound

        Example:
            >>> result = await booking.create("u1", "v1", "s1", None, slot)
            >>> if isinstance(result, SlotNoLongerAvailable):
            ...     slots = await availability.compute_slots("v1", "s1", day)
        """
        offering = await resolve_offering(self.catalog, venue_id, service_id, employee_id)
        if isinstance(offering, NotFound):
            return offering

        venue, service, employees = offering
        now = self.clock()
        start = as_utc(slot.start_time)

        if not slot.is_available:
            return SlotNoLongerAvailable(start)
        if start <= now:
            return SlotNoLongerAvailable(start, reason="The selected time has already passed")
        if not on_grid(venue, service, start):
            return SlotNoLongerAvailable(start, reason="The selected time is not a bookable start")

        if employee_id is None:
            candidates = await self.availability.free_employees(venue, service, start)
        else:
            candidates = employees

        for employee in candidates:
            appointment = Appointment(
                id=self.id_factory(),
                user_id=user_id,
                venue_id=venue.id,
                venue_name=venue.name,
                service_id=service.id,
                service_name=service.name,
                employee_id=employee.id,
                employee_name=employee.name,
                scheduled_at=start,
                duration_minutes=service.duration_minutes,
                price=service.price,
                status=AppointmentStatus.UPCOMING,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
            if await self.appointments.insert_if_free(appointment):
                logger.info(
                    f"Booked appointment {appointment.id} for user {user_id} "
                    f"with {employee.name} at {start.isoformat()}"
                )
                return Ok(appointment)

        logger.warning(
            f"Slot {start.isoformat()} for venue {venue_id} service {service_id} "
            f"is no longer available"
        )
        return SlotNoLongerAvailable(start)

    async def cancel(self, appointment_id: str) -> CancelResult:
        """
        Cancel an appointment and release its slot.

        Cancelling an already cancelled appointment succeeds without changes.

        Returns:
            Ok with the cancelled appointment, NotFound, or
            InvalidStateTransition for completed appointments
        """
        appointment = await self.appointments.get(appointment_id)
        if appointment is None:
            return NotFound("Appointment", appointment_id)

        now = self.clock()
        status = effective_status(appointment, now)
        if status == AppointmentStatus.CANCELLED:
            return Ok(appointment)
        if status == AppointmentStatus.COMPLETED:
            logger.warning(f"Refused to cancel completed appointment {appointment_id}")
            return InvalidStateTransition(appointment_id, status.value, "cancel")

        if await self.appointments.set_status(
            appointment_id, AppointmentStatus.UPCOMING, AppointmentStatus.CANCELLED
        ):
            logger.info(f"Cancelled appointment {appointment_id}")
            return Ok(replace(appointment, status=AppointmentStatus.CANCELLED, updated_at=now))

        # Status changed underneath us; a concurrent cancel still counts as success.
        current = await self.appointments.get(appointment_id)
        if current is None:
            return NotFound("Appointment", appointment_id)
        if current.status == AppointmentStatus.CANCELLED:
            return Ok(current)
        return InvalidStateTransition(
            appointment_id, effective_status(current, now).value, "cancel"
        )

    async def reschedule(self, appointment_id: str, new_slot: TimeSlot) -> RescheduleResult:
        """
        Move an upcoming appointment to a new slot with the same employee.

        The new time is claimed before the old one is released, so the
        employee is never double-booked. Duration and price are kept.

        Returns:
            Ok with the moved appointment, SlotNoLongerAvailable, NotFound,
            or InvalidStateTransition
        """
        appointment = await self.appointments.get(appointment_id)
        if appointment is None:
            return NotFound("Appointment", appointment_id)

        now = self.clock()
        status = effective_status(appointment, now)
        if status != AppointmentStatus.UPCOMING:
            logger.warning(f"Refused to reschedule {status.value} appointment {appointment_id}")
            return InvalidStateTransition(appointment_id, status.value, "reschedule")

        new_start = as_utc(new_slot.start_time)
        if new_start == appointment.scheduled_at:
            return Ok(appointment)

        offering = await resolve_offering(
            self.catalog, appointment.venue_id, appointment.service_id, appointment.employee_id
        )
        if isinstance(offering, NotFound):
            return offering
        venue, service, _ = offering

        if not new_slot.is_available or new_start <= now or not on_grid(venue, service, new_start):
            return SlotNoLongerAvailable(new_start)

        new_end = new_start + timedelta(minutes=appointment.duration_minutes)
        claimed = await self.appointments.claim(
            appointment_id, appointment.venue_id, appointment.employee_id, new_start, new_end
        )
        if not claimed:
            logger.warning(
                f"Reschedule of {appointment_id} lost slot {new_start.isoformat()}"
            )
            return SlotNoLongerAvailable(new_start)

        moved = await self.appointments.move(appointment_id, appointment.scheduled_at, new_start)
        if not moved:
            return await self._undo_claim(appointment, new_start, now)

        await self.appointments.release(appointment_id, appointment.scheduled_at)
        logger.info(
            f"Rescheduled appointment {appointment_id} from "
            f"{appointment.scheduled_at.isoformat()} to {new_start.isoformat()}"
        )
        return Ok(replace(appointment, scheduled_at=new_start, updated_at=now))

    async def _undo_claim(
        self, appointment: Appointment, new_start: datetime, now: datetime
    ) -> RescheduleResult:
        """Give back a claim taken for a move that did not happen."""
        current = await self.appointments.get(appointment.id)
        if current is not None and current.status == AppointmentStatus.UPCOMING:
            # Re-tag the blocks of the interval the appointment really holds.
            await self.appointments.claim(
                current.id,
                current.venue_id,
                current.employee_id,
                current.scheduled_at,
                current.ends_at,
            )
            if current.scheduled_at != new_start:
                await self.appointments.release(current.id, new_start)
        else:
            await self.appointments.release(appointment.id, new_start)

        logger.warning(f"Appointment {appointment.id} changed during reschedule")
        if current is None:
            return NotFound("Appointment", appointment.id)
        status = effective_status(current, now)
        if status != AppointmentStatus.UPCOMING:
            return InvalidStateTransition(appointment.id, status.value, "reschedule")
        return SlotNoLongerAvailable(new_start)

    async def get(self, appointment_id: str) -> Optional[Appointment]:
        """Appointment with its effective status, or None."""
        appointment = await self.appointments.get(appointment_id)
        if appointment is None:
            return None
        return self._effective(appointment, self.clock())

    async def upcoming(self, user_id: str) -> List[Appointment]:
        """Upcoming appointments of a user, soonest first."""
        now = self.clock()
        appointments = [
            self._effective(a, now) for a in await self.appointments.list_for_user(user_id)
        ]
        return sorted(
            (a for a in appointments if a.status == AppointmentStatus.UPCOMING),
            key=lambda a: a.scheduled_at,
        )

    async def past(self, user_id: str) -> List[Appointment]:
        """Completed and cancelled appointments of a user, most recent first."""
        now = self.clock()
        appointments = [
            self._effective(a, now) for a in await self.appointments.list_for_user(user_id)
        ]
        return sorted(
            (a for a in appointments if a.status != AppointmentStatus.UPCOMING),
            key=lambda a: a.scheduled_at,
            reverse=True,
        )

    @staticmethod
    def _effective(appointment: Appointment, now: datetime) -> Appointment:
        status = effective_status(appointment, now)
        if status == appointment.status:
            return appointment
        return replace(appointment, status=status)
