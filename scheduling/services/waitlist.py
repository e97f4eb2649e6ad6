"""
Waitlist Orchestrator

Manages waitlist requests for fully booked days: joining, checking for newly
opened slots, booking an opening, cancelling and expiring stale requests.
"""

import logging
from dataclasses import replace
from datetime import date, datetime
from typing import Callable, List, Optional

from scheduling.catalog import Catalog
from scheduling.db.interfaces import WaitlistStore
from scheduling.models.domain import (
    TimeRange,
    TimeSlot,
    WaitlistRequest,
    WaitlistStatus,
    as_utc,
    new_id,
    utcnow,
)
from scheduling.models.results import (
    InvalidStateTransition,
    NotFound,
    Ok,
    SlotNoLongerAvailable,
    SlotsResult,
    WaitlistBookResult,
    WaitlistResult,
)
from scheduling.services.availability import AvailabilityCalculator
from scheduling.services.booking import BookingStateMachine

logger = logging.getLogger(__name__)


class WaitlistOrchestrator:
    """Service for waitlist requests."""

    def __init__(
        self,
        catalog: Catalog,
        availability: AvailabilityCalculator,
        booking: BookingStateMachine,
        requests: WaitlistStore,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = new_id,
    ):
        self.catalog = catalog
        self.availability = availability
        self.booking = booking
        self.requests = requests
        self.clock = clock
        self.id_factory = id_factory

    async def join(
        self,
        user_id: str,
        venue_id: str,
        service_id: str,
        preferred_date: date,
        preferred_time_range: TimeRange = TimeRange.ANY,
    ) -> WaitlistResult:
        """
        Put a user on the waitlist for a date.

        The day is not re-checked for availability; joining a day that has
        opened up in the meantime is harmless.

        Args:
            user_id: Opaque user identifier
            venue_id: Venue ID
            service_id: Service ID
            preferred_date: Venue-local date the user wants
            preferred_time_range: Time-of-day band the user accepts

        Returns:
            Ok with the new PENDING request, or NotFound
        """
        venue = await self.catalog.get_venue(venue_id)
        if venue is None:
            return NotFound("Venue", venue_id)
        if venue.service(service_id) is None:
            return NotFound("Service", service_id)

        request = WaitlistRequest(
            id=self.id_factory(),
            user_id=user_id,
            venue_id=venue.id,
            service_id=service_id,
            preferred_date=preferred_date,
            preferred_time_range=preferred_time_range,
            status=WaitlistStatus.PENDING,
            created_at=self.clock(),
        )
        await self.requests.insert(request)
        logger.info(
            f"User {user_id} joined waitlist {request.id} for venue {venue_id} "
            f"on {preferred_date} ({preferred_time_range.value})"
        )
        return Ok(request)

    async def check_for_opening(self, request: WaitlistRequest) -> SlotsResult:
        """Available slots on the preferred date inside the preferred band."""
        return await self.availability.slots_in_band(
            request.venue_id,
            request.service_id,
            request.preferred_date,
            request.preferred_time_range,
        )

    async def fulfill_from_opening(
        self,
        request: WaitlistRequest,
        chosen_slot: TimeSlot,
        notes: Optional[str] = None,
    ) -> WaitlistBookResult:
        """
        Book one of the current openings and mark the request fulfilled.

        Args:
            request: Waitlist request, which must be PENDING
            chosen_slot: Slot picked from ``check_for_opening``
            notes: Optional notes for the appointment

        Returns:
            Ok with the appointment, SlotNoLongerAvailable, NotFound, or
            InvalidStateTransition
        """
        current = await self.requests.get(request.id)
        if current is None:
            return NotFound("WaitlistRequest", request.id)
        if current.status != WaitlistStatus.PENDING:
            return InvalidStateTransition(current.id, current.status.value, "fulfill")

        openings = await self.check_for_opening(current)
        if isinstance(openings, NotFound):
            return openings

        start = as_utc(chosen_slot.start_time)
        slot = next((s for s in openings.value if s.start_time == start), None)
        if slot is None:
            logger.warning(f"Waitlist {current.id}: slot {start.isoformat()} is not an opening")
            return SlotNoLongerAvailable(start)

        booked = await self.booking.create(
            current.user_id, current.venue_id, current.service_id, None, slot, notes
        )
        if not isinstance(booked, Ok):
            return booked

        appointment = booked.value
        fulfilled = await self.requests.set_status(
            current.id,
            WaitlistStatus.PENDING,
            WaitlistStatus.FULFILLED,
            appointment_id=appointment.id,
        )
        if not fulfilled:
            # Request was cancelled or expired while booking; give the slot back.
            await self.booking.cancel(appointment.id)
            latest = await self.requests.get(current.id)
            status = latest.status.value if latest else "missing"
            return InvalidStateTransition(current.id, status, "fulfill")

        logger.info(f"Waitlist {current.id} fulfilled with appointment {appointment.id}")
        return booked

    async def cancel(self, request: WaitlistRequest) -> WaitlistResult:
        """Cancel a pending request. Cancelling twice succeeds."""
        current = await self.requests.get(request.id)
        if current is None:
            return NotFound("WaitlistRequest", request.id)

        if current.status == WaitlistStatus.PENDING and await self.requests.set_status(
            current.id, WaitlistStatus.PENDING, WaitlistStatus.CANCELLED
        ):
            logger.info(f"Cancelled waitlist request {current.id}")
            return Ok(replace(current, status=WaitlistStatus.CANCELLED))

        latest = await self.requests.get(current.id) or current
        if latest.status == WaitlistStatus.CANCELLED:
            return Ok(latest)
        return InvalidStateTransition(latest.id, latest.status.value, "cancel")

    async def expire(self, request: WaitlistRequest) -> bool:
        expired = await self.requests.set_status(
            request.id, WaitlistStatus.PENDING, WaitlistStatus.EXPIRED
        )
        if expired:
            logger.info(f"Expired waitlist request {request.id}")
        return expired

    async def expire_if_stale(self, request: WaitlistRequest, today: date) -> bool:
        """Expire a PENDING request whose preferred date is before `today`."""
        if request.status != WaitlistStatus.PENDING or request.preferred_date >= today:
            return False
        return await self.expire(request)

    async def for_user(self, user_id: str) -> List[WaitlistRequest]:
        return await self.requests.list_for_user(user_id)
