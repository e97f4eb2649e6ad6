from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

from scheduling.catalog import CatalogError, InMemoryCatalog
from scheduling.db.memory import InMemoryAppointmentStore, InMemoryWaitlistStore
from scheduling.models.domain import (
    AppointmentStatus,
    TimeRange,
    WaitlistRequest,
    WaitlistStatus,
)
from scheduling.models.results import (
    InvalidStateTransition,
    NotFound,
    Ok,
    SlotNoLongerAvailable,
)
from scheduling.services.facade import SchedulingFacade
from scheduling.tests.helpers import (
    EMRE,
    HAIRCUT,
    MONDAY,
    NOW,
    SATURDAY_BEFORE,
    TUESDAY,
    VENUE_ID,
    FixedClock,
    YieldingAppointmentStore,
    at,
    make_venue,
    slot_at,
)


async def _free_monday_at(facade: SchedulingFacade, hour: int) -> None:
    """Cancel the fully booked day's appointment at `hour`."""
    for appointment in await facade.upcoming_for("someone-else"):
        if appointment.scheduled_at == at(MONDAY, hour):
            result = await facade.cancel(appointment.id)
            assert isinstance(result, Ok)
            return
    raise AssertionError(f"no appointment at {hour}:00")


async def test_join_creates_pending_request(facade: SchedulingFacade) -> None:
    result = await facade.join_waitlist("u1", VENUE_ID, HAIRCUT, MONDAY, TimeRange.MORNING)

    assert isinstance(result, Ok)
    request = result.value
    assert request.status == WaitlistStatus.PENDING
    assert request.preferred_time_range == TimeRange.MORNING
    assert request.created_at == NOW
    assert await facade.waitlist_for("u1") == [request]


async def test_join_unknown_venue_is_not_found(facade: SchedulingFacade) -> None:
    result = await facade.join_waitlist("u1", "nope", HAIRCUT, MONDAY)

    assert result == NotFound("Venue", "nope")


async def test_check_for_opening_respects_band(
    facade: SchedulingFacade, book_whole_day
) -> None:
    await book_whole_day(MONDAY)
    afternoon = await facade.join_waitlist("u1", VENUE_ID, HAIRCUT, MONDAY, TimeRange.AFTERNOON)
    morning = await facade.join_waitlist("u2", VENUE_ID, HAIRCUT, MONDAY, TimeRange.MORNING)
    assert isinstance(afternoon, Ok) and isinstance(morning, Ok)

    assert await facade.check_waitlist_opening(afternoon.value.id) == Ok([])

    await _free_monday_at(facade, 15)

    afternoon_openings = await facade.check_waitlist_opening(afternoon.value.id, "u1")
    morning_openings = await facade.check_waitlist_opening(morning.value.id, "u2")
    assert isinstance(afternoon_openings, Ok)
    assert [s.start_time for s in afternoon_openings.value] == [at(MONDAY, 15)]
    assert morning_openings == Ok([])


async def test_fulfill_books_opening_and_links_appointment(
    facade: SchedulingFacade, waitlist_store: InMemoryWaitlistStore, book_whole_day
) -> None:
    await book_whole_day(MONDAY)
    joined = await facade.join_waitlist("u1", VENUE_ID, HAIRCUT, MONDAY)
    assert isinstance(joined, Ok)
    await _free_monday_at(facade, 15)

    result = await facade.book_from_waitlist(joined.value.id, slot_at(MONDAY, 15), "via waitlist")

    assert isinstance(result, Ok)
    appointment = result.value
    assert appointment.user_id == "u1"
    assert appointment.scheduled_at == at(MONDAY, 15)
    assert appointment.employee_id == EMRE
    assert appointment.status == AppointmentStatus.UPCOMING
    stored = await waitlist_store.get(joined.value.id)
    assert stored.status == WaitlistStatus.FULFILLED
    assert stored.appointment_id == appointment.id

    again = await facade.book_from_waitlist(joined.value.id, slot_at(MONDAY, 15))
    assert again == InvalidStateTransition(joined.value.id, "FULFILLED", "fulfill")


async def test_fulfill_rejects_slot_that_is_not_an_opening(
    facade: SchedulingFacade, waitlist_store: InMemoryWaitlistStore, book_whole_day
) -> None:
    await book_whole_day(MONDAY)
    joined = await facade.join_waitlist("u1", VENUE_ID, HAIRCUT, MONDAY, TimeRange.MORNING)
    assert isinstance(joined, Ok)
    await _free_monday_at(facade, 15)

    result = await facade.book_from_waitlist(joined.value.id, slot_at(MONDAY, 15))

    assert isinstance(result, SlotNoLongerAvailable)
    stored = await waitlist_store.get(joined.value.id)
    assert stored.status == WaitlistStatus.PENDING


async def test_waitlist_request_of_other_user_is_not_found(facade: SchedulingFacade) -> None:
    joined = await facade.join_waitlist("u1", VENUE_ID, HAIRCUT, MONDAY)
    assert isinstance(joined, Ok)

    assert isinstance(await facade.check_waitlist_opening(joined.value.id, "u2"), NotFound)
    assert isinstance(await facade.cancel_waitlist(joined.value.id, "u2"), NotFound)


async def test_cancel_is_idempotent_and_fulfilled_is_terminal(
    facade: SchedulingFacade, waitlist_store: InMemoryWaitlistStore
) -> None:
    joined = await facade.join_waitlist("u1", VENUE_ID, HAIRCUT, MONDAY)
    assert isinstance(joined, Ok)

    first = await facade.cancel_waitlist(joined.value.id)
    second = await facade.cancel_waitlist(joined.value.id)

    assert isinstance(first, Ok) and first.value.status == WaitlistStatus.CANCELLED
    assert isinstance(second, Ok) and second.value.status == WaitlistStatus.CANCELLED

    other = await facade.join_waitlist("u1", VENUE_ID, HAIRCUT, MONDAY)
    assert isinstance(other, Ok)
    await waitlist_store.set_status(
        other.value.id, WaitlistStatus.PENDING, WaitlistStatus.FULFILLED
    )
    assert await facade.cancel_waitlist(other.value.id) == InvalidStateTransition(
        other.value.id, "FULFILLED", "cancel"
    )


async def test_expire_if_stale_only_touches_past_pending_requests(
    facade: SchedulingFacade, waitlist_store: InMemoryWaitlistStore
) -> None:
    joined = await facade.join_waitlist("u1", VENUE_ID, HAIRCUT, MONDAY)
    assert isinstance(joined, Ok)
    request = joined.value

    assert await facade.waitlist.expire_if_stale(request, MONDAY) is False
    assert await facade.waitlist.expire_if_stale(request, MONDAY + timedelta(days=1)) is True
    stored = await waitlist_store.get(request.id)
    assert stored.status == WaitlistStatus.EXPIRED


async def test_sweep_notifies_once_and_expires_stale_requests(
    facade: SchedulingFacade,
    waitlist_store: InMemoryWaitlistStore,
    appointment_store: InMemoryAppointmentStore,
    notifier: AsyncMock,
    book_whole_day,
) -> None:
    await book_whole_day(MONDAY)
    waiting = await facade.join_waitlist("u1", VENUE_ID, HAIRCUT, MONDAY)
    stale = await facade.join_waitlist("u2", VENUE_ID, HAIRCUT, SATURDAY_BEFORE)
    assert isinstance(waiting, Ok) and isinstance(stale, Ok)
    await waitlist_store.insert(
        WaitlistRequest("orphan", "u3", "closed-venue", HAIRCUT, MONDAY)
    )

    quiet = await facade.sweep_waitlist()
    assert (quiet.checked, quiet.expired, quiet.notified) == (3, 2, 0)
    notifier.notify_opening.assert_not_called()

    # Freed behind the facade's back, so only the sweep can announce it.
    taken = next(
        a
        for a in await facade.upcoming_for("someone-else")
        if a.scheduled_at == at(MONDAY, 9)
    )
    await appointment_store.set_status(
        taken.id, AppointmentStatus.UPCOMING, AppointmentStatus.CANCELLED
    )
    first = await facade.sweep_waitlist()
    second = await facade.sweep_waitlist()

    assert first.notified == 1
    assert second.notified == 0
    notifier.notify_opening.assert_awaited_once()
    notified_request, slots = notifier.notify_opening.await_args.args
    assert notified_request.id == waiting.value.id
    assert [s.start_time for s in slots] == [at(MONDAY, 9)]
    assert (await waitlist_store.get(waiting.value.id)).notified_at == NOW
    assert (await waitlist_store.get(stale.value.id)).status == WaitlistStatus.EXPIRED
    assert (await waitlist_store.get("orphan")).status == WaitlistStatus.EXPIRED


async def test_sweep_retries_notification_after_delivery_failure(
    facade: SchedulingFacade,
    waitlist_store: InMemoryWaitlistStore,
    notifier: AsyncMock,
) -> None:
    joined = await facade.join_waitlist("u1", VENUE_ID, HAIRCUT, MONDAY)
    assert isinstance(joined, Ok)
    notifier.notify_opening.return_value = False

    report = await facade.sweep_waitlist()

    assert report.notified == 0
    assert (await waitlist_store.get(joined.value.id)).notified_at is None


async def test_cancel_announces_opening_to_that_day_only(
    facade: SchedulingFacade,
    waitlist_store: InMemoryWaitlistStore,
    notifier: AsyncMock,
    book_whole_day,
) -> None:
    await book_whole_day(MONDAY)
    waiting = await facade.join_waitlist("u1", VENUE_ID, HAIRCUT, MONDAY, TimeRange.MORNING)
    evening = await facade.join_waitlist("u2", VENUE_ID, HAIRCUT, MONDAY, TimeRange.EVENING)
    tuesday = await facade.join_waitlist("u3", VENUE_ID, HAIRCUT, TUESDAY)
    assert isinstance(waiting, Ok) and isinstance(evening, Ok) and isinstance(tuesday, Ok)

    await _free_monday_at(facade, 10)

    notifier.notify_opening.assert_awaited_once()
    notified_request, slots = notifier.notify_opening.await_args.args
    assert notified_request.id == waiting.value.id
    assert [s.start_time for s in slots] == [at(MONDAY, 10)]
    assert (await waitlist_store.get(waiting.value.id)).notified_at == NOW
    assert (await waitlist_store.get(evening.value.id)).notified_at is None
    assert (await waitlist_store.get(tuesday.value.id)).notified_at is None


async def test_cancel_succeeds_when_announcement_hits_catalog_outage(
    facade: SchedulingFacade,
    catalog: InMemoryCatalog,
    notifier: AsyncMock,
) -> None:
    booked = await facade.book("u1", VENUE_ID, HAIRCUT, EMRE, slot_at(MONDAY, 10))
    assert isinstance(booked, Ok)

    with patch.object(catalog, "get_venue", side_effect=CatalogError("catalog down")):
        result = await facade.cancel(booked.value.id)

    assert isinstance(result, Ok) and result.value.status == AppointmentStatus.CANCELLED
    notifier.notify_opening.assert_not_called()


async def test_fulfil_gives_slot_back_when_request_cancelled_meanwhile(
    clock: FixedClock,
) -> None:
    store = YieldingAppointmentStore()
    facade = SchedulingFacade(
        InMemoryCatalog([make_venue()]),
        store,
        InMemoryWaitlistStore(),
        notifier=AsyncMock(),
        clock=clock,
    )
    joined = await facade.join_waitlist("u1", VENUE_ID, HAIRCUT, MONDAY)
    assert isinstance(joined, Ok)

    fulfilled, cancelled = await asyncio.gather(
        facade.book_from_waitlist(joined.value.id, slot_at(MONDAY, 9)),
        facade.cancel_waitlist(joined.value.id),
    )

    assert isinstance(cancelled, Ok)
    assert fulfilled == InvalidStateTransition(joined.value.id, "CANCELLED", "fulfill")
    assert await facade.upcoming_for("u1") == []
    assert store.claimed_blocks(VENUE_ID, EMRE) == []
    slots = await facade.list_slots(VENUE_ID, HAIRCUT, MONDAY)
    assert isinstance(slots, Ok) and slots.value[0].is_available is True
