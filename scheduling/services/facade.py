"""
Scheduling Facade

Single entry point used by the HTTP API and the chat front end. Wires the
availability calculator, booking state machine and waitlist orchestrator to
the catalog and stores, and drives the per-session booking flow.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from scheduling.bot.notifier import LoggingNotifier, WaitlistNotifier
from scheduling.catalog import Catalog
from scheduling.db.interfaces import AppointmentStore, WaitlistStore
from scheduling.models.domain import (
    Appointment,
    AppointmentStatus,
    TimeRange,
    TimeSlot,
    Venue,
    WaitlistRequest,
    WaitlistStatus,
    new_id,
    utcnow,
)
from scheduling.models.results import (
    BookResult,
    CancelResult,
    InvalidStateTransition,
    NextDateResult,
    NoAvailabilityWithinHorizon,
    NotFound,
    Ok,
    RescheduleResult,
    SlotNoLongerAvailable,
    SlotsResult,
    UpstreamUnavailable,
    WaitlistBookResult,
    WaitlistResult,
)
from scheduling.services.availability import AvailabilityCalculator
from scheduling.services.booking import BookingStateMachine
from scheduling.services.waitlist import WaitlistOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """Counts from one waitlist sweep."""

    checked: int = 0
    expired: int = 0
    notified: int = 0


class SchedulingFacade:
    """
    Scheduling entry point.

    Operations that take an optional ``user_id`` report another user's
    appointment or waitlist request as NotFound.
    """

    def __init__(
        self,
        catalog: Catalog,
        appointments: AppointmentStore,
        waitlist_requests: WaitlistStore,
        notifier: Optional[WaitlistNotifier] = None,
        horizon_days: int = 60,
        quantum_minutes: int = 5,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = new_id,
    ):
        """
        Initialize SchedulingFacade.

        Args:
            catalog: Catalog collaborator
            appointments: Appointment store
            waitlist_requests: Waitlist store
            notifier: Opening notifier; logs only when omitted
            horizon_days: Next-available scan bound in days
            quantum_minutes: Occupancy block size of the appointment store
            clock: Returns the current aware instant
            id_factory: Produces new entity IDs
        """
        self.catalog = catalog
        self.appointments = appointments
        self.waitlist_requests = waitlist_requests
        self.notifier = notifier or LoggingNotifier()
        self.clock = clock

        self.availability = AvailabilityCalculator(
            catalog,
            appointments,
            horizon_days=horizon_days,
            quantum_minutes=quantum_minutes,
            clock=clock,
        )
        self.booking = BookingStateMachine(
            catalog, appointments, self.availability, clock=clock, id_factory=id_factory
        )
        self.waitlist = WaitlistOrchestrator(
            catalog,
            self.availability,
            self.booking,
            waitlist_requests,
            clock=clock,
            id_factory=id_factory,
        )

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    async def list_slots(
        self,
        venue_id: str,
        service_id: str,
        day: date,
        employee_id: Optional[str] = None,
    ) -> SlotsResult:
        return await self.availability.compute_slots(venue_id, service_id, day, employee_id)

    async def next_available_date(
        self,
        venue_id: str,
        service_id: str,
        from_date: date,
        employee_id: Optional[str] = None,
    ) -> NextDateResult:
        return await self.availability.find_next_available_date(
            venue_id, service_id, from_date, employee_id
        )

    # ------------------------------------------------------------------
    # Appointments
    # ------------------------------------------------------------------

    async def book(
        self,
        user_id: str,
        venue_id: str,
        service_id: str,
        employee_id: Optional[str],
        slot: TimeSlot,
        notes: Optional[str] = None,
    ) -> BookResult:
        return await self.booking.create(user_id, venue_id, service_id, employee_id, slot, notes)

    async def cancel(self, appointment_id: str, user_id: Optional[str] = None) -> CancelResult:
        owned = await self._owned_appointment(appointment_id, user_id)
        if isinstance(owned, NotFound):
            return owned
        cancelled = await self.booking.cancel(appointment_id)
        if isinstance(cancelled, Ok) and owned.status == AppointmentStatus.UPCOMING:
            await self._announce_opening(cancelled.value)
        return cancelled

    async def reschedule(
        self,
        appointment_id: str,
        new_slot: TimeSlot,
        user_id: Optional[str] = None,
    ) -> RescheduleResult:
        owned = await self._owned_appointment(appointment_id, user_id)
        if isinstance(owned, NotFound):
            return owned
        return await self.booking.reschedule(appointment_id, new_slot)

    async def get_appointment(
        self, appointment_id: str, user_id: Optional[str] = None
    ) -> Union[Ok[Appointment], NotFound]:
        owned = await self._owned_appointment(appointment_id, user_id)
        if isinstance(owned, NotFound):
            return owned
        return Ok(owned)

    async def upcoming_for(self, user_id: str) -> List[Appointment]:
        return await self.booking.upcoming(user_id)

    async def past_for(self, user_id: str) -> List[Appointment]:
        return await self.booking.past(user_id)

    async def _owned_appointment(
        self, appointment_id: str, user_id: Optional[str]
    ) -> Union[Appointment, NotFound]:
        appointment = await self.booking.get(appointment_id)
        if appointment is None or (user_id is not None and appointment.user_id != user_id):
            return NotFound("Appointment", appointment_id)
        return appointment

    # ------------------------------------------------------------------
    # Waitlist
    # ------------------------------------------------------------------

    async def join_waitlist(
        self,
        user_id: str,
        venue_id: str,
        service_id: str,
        day: date,
        band: TimeRange = TimeRange.ANY,
    ) -> WaitlistResult:
        return await self.waitlist.join(user_id, venue_id, service_id, day, band)

    async def waitlist_for(self, user_id: str) -> List[WaitlistRequest]:
        return await self.waitlist.for_user(user_id)

    async def check_waitlist_opening(
        self, request_id: str, user_id: Optional[str] = None
    ) -> SlotsResult:
        request = await self._owned_request(request_id, user_id)
        if isinstance(request, NotFound):
            return request
        return await self.waitlist.check_for_opening(request)

    async def book_from_waitlist(
        self,
        request_id: str,
        slot: TimeSlot,
        notes: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> WaitlistBookResult:
        request = await self._owned_request(request_id, user_id)
        if isinstance(request, NotFound):
            return request
        return await self.waitlist.fulfill_from_opening(request, slot, notes)

    async def cancel_waitlist(
        self, request_id: str, user_id: Optional[str] = None
    ) -> WaitlistResult:
        request = await self._owned_request(request_id, user_id)
        if isinstance(request, NotFound):
            return request
        return await self.waitlist.cancel(request)

    async def _owned_request(
        self, request_id: str, user_id: Optional[str]
    ) -> Union[WaitlistRequest, NotFound]:
        request = await self.waitlist_requests.get(request_id)
        if request is None or (user_id is not None and request.user_id != user_id):
            return NotFound("WaitlistRequest", request_id)
        return request

    async def sweep_waitlist(self) -> SweepReport:
        """
        Expire stale waitlist requests and notify users about openings.

        Each pending request is notified at most once. Requests whose venue
        disappeared from the catalog are expired.

        Returns:
            SweepReport with counts of checked, expired and notified requests
        """
        report = SweepReport()
        now = self.clock()
        venues: Dict[str, Optional[Venue]] = {}

        for request in await self.waitlist_requests.list_by_status(WaitlistStatus.PENDING):
            report.checked += 1
            if request.venue_id not in venues:
                venues[request.venue_id] = await self.catalog.get_venue(request.venue_id)
            venue = venues[request.venue_id]

            if venue is None:
                if await self.waitlist.expire(request):
                    report.expired += 1
                continue
            if await self.waitlist.expire_if_stale(request, venue.today(now)):
                report.expired += 1
                continue
            if request.notified_at is not None:
                continue
            if await self._notify_if_open(request, now):
                report.notified += 1

        logger.info(
            f"Waitlist sweep: {report.checked} checked, {report.expired} expired, "
            f"{report.notified} notified"
        )
        return report

    async def _announce_opening(self, appointment: Appointment) -> None:
        """
        Notify users waiting on the day a cancelled appointment freed.

        Failures are logged only; the next sweep picks the requests up again.
        """
        try:
            venue = await self.catalog.get_venue(appointment.venue_id)
            if venue is None:
                return
            day = venue.today(appointment.scheduled_at)
            now = self.clock()
            waiting = await self.waitlist_requests.list_for_date(
                venue.id, appointment.service_id, day
            )
            for request in waiting:
                if request.status == WaitlistStatus.PENDING and request.notified_at is None:
                    await self._notify_if_open(request, now)
        except UpstreamUnavailable as e:
            logger.error(f"Could not announce opening freed by {appointment.id}: {e}")

    async def _notify_if_open(self, request: WaitlistRequest, now: datetime) -> bool:
        openings = await self.waitlist.check_for_opening(request)
        if not isinstance(openings, Ok) or not openings.value:
            return False
        if not await self.notifier.notify_opening(request, openings.value):
            return False
        await self.waitlist_requests.mark_notified(request.id, now)
        return True

    # ------------------------------------------------------------------
    # Booking flow
    # ------------------------------------------------------------------

    def start_flow(
        self,
        user_id: str,
        venue_id: str,
        service_id: str,
        employee_id: Optional[str] = None,
    ) -> "BookingFlow":
        return BookingFlow(self, user_id, venue_id, service_id, employee_id)


class FlowState(str, Enum):
    SELECTING_DATE = "SELECTING_DATE"
    SELECTING_SLOT = "SELECTING_SLOT"
    FULLY_BOOKED = "FULLY_BOOKED"
    BOOKED = "BOOKED"
    WAITLIST_JOINED = "WAITLIST_JOINED"


class BookingFlow:
    """
    One user's booking session for a venue and service.

    Only loads slots until a booking or waitlist write happens, so an
    abandoned flow leaves nothing behind.
    """

    def __init__(
        self,
        facade: SchedulingFacade,
        user_id: str,
        venue_id: str,
        service_id: str,
        employee_id: Optional[str] = None,
    ):
        self.facade = facade
        self.user_id = user_id
        self.venue_id = venue_id
        self.service_id = service_id
        self.employee_id = employee_id

        self.state = FlowState.SELECTING_DATE
        self.selected_date: Optional[date] = None
        self.slots: List[TimeSlot] = []
        self.next_available_date: Optional[date] = None
        self.horizon_exhausted = False
        self.slot_unavailable_notice = False
        self.appointment: Optional[Appointment] = None
        self.waitlist_request: Optional[WaitlistRequest] = None
        self.openings: List[TimeSlot] = []

    def _refuse(self, action: str) -> InvalidStateTransition:
        logger.debug(f"Booking flow of user {self.user_id}: {action} refused in {self.state.value}")
        return InvalidStateTransition("booking flow", self.state.value, action)

    async def select_date(
        self, day: date
    ) -> Union[Ok[FlowState], NotFound, InvalidStateTransition]:
        """Load the slots of a date; FULLY_BOOKED also looks up the next open date."""
        if self.state not in (
            FlowState.SELECTING_DATE,
            FlowState.SELECTING_SLOT,
            FlowState.FULLY_BOOKED,
        ):
            return self._refuse("select_date")
        self.slot_unavailable_notice = False
        return await self._load(day)

    async def go_to_next_available(
        self,
    ) -> Union[Ok[FlowState], NotFound, InvalidStateTransition]:
        if self.state != FlowState.FULLY_BOOKED or self.next_available_date is None:
            return self._refuse("go_to_next_available")
        return await self._load(self.next_available_date)

    async def select_slot(
        self, slot: TimeSlot, notes: Optional[str] = None
    ) -> Union[BookResult, InvalidStateTransition]:
        """
        Book a slot of the selected date.

        Losing the slot reloads the date and raises ``slot_unavailable_notice``;
        no other slot is booked in its place.
        """
        if self.state != FlowState.SELECTING_SLOT:
            return self._refuse("select_slot")

        result = await self.facade.book(
            self.user_id, self.venue_id, self.service_id, self.employee_id, slot, notes
        )
        if isinstance(result, Ok):
            self.appointment = result.value
            self.state = FlowState.BOOKED
        elif isinstance(result, SlotNoLongerAvailable):
            await self._load(self.selected_date)
            self.slot_unavailable_notice = True
        return result

    async def join_waitlist(
        self, band: TimeRange = TimeRange.ANY
    ) -> Union[WaitlistResult, InvalidStateTransition]:
        if self.state != FlowState.FULLY_BOOKED:
            return self._refuse("join_waitlist")

        result = await self.facade.join_waitlist(
            self.user_id, self.venue_id, self.service_id, self.selected_date, band
        )
        if isinstance(result, Ok):
            self.waitlist_request = result.value
            self.state = FlowState.WAITLIST_JOINED
        return result

    async def check_opening(self) -> Union[SlotsResult, InvalidStateTransition]:
        if self.state != FlowState.WAITLIST_JOINED:
            return self._refuse("check_opening")

        result = await self.facade.check_waitlist_opening(self.waitlist_request.id, self.user_id)
        if isinstance(result, Ok):
            self.openings = result.value
        return result

    async def book_opening(
        self, slot: TimeSlot, notes: Optional[str] = None
    ) -> Union[WaitlistBookResult, InvalidStateTransition]:
        if self.state != FlowState.WAITLIST_JOINED:
            return self._refuse("book_opening")

        result = await self.facade.book_from_waitlist(
            self.waitlist_request.id, slot, notes, self.user_id
        )
        if isinstance(result, Ok):
            self.appointment = result.value
            self.state = FlowState.BOOKED
        return result

    async def _load(self, day: date) -> Union[Ok[FlowState], NotFound]:
        result = await self.facade.list_slots(
            self.venue_id, self.service_id, day, self.employee_id
        )
        if isinstance(result, NotFound):
            return result

        self.selected_date = day
        self.slots = result.value
        self.next_available_date = None
        self.horizon_exhausted = False

        if any(slot.is_available for slot in self.slots):
            self.state = FlowState.SELECTING_SLOT
            return Ok(self.state)

        self.state = FlowState.FULLY_BOOKED
        upcoming = await self.facade.next_available_date(
            self.venue_id, self.service_id, day + timedelta(days=1), self.employee_id
        )
        if isinstance(upcoming, Ok):
            self.next_available_date = upcoming.value
        elif isinstance(upcoming, NoAvailabilityWithinHorizon):
            self.horizon_exhausted = True
        return Ok(self.state)
