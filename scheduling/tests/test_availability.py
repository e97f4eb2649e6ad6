from __future__ import annotations

from datetime import timedelta

from scheduling.catalog import InMemoryCatalog
from scheduling.db.memory import InMemoryAppointmentStore, InMemoryWaitlistStore
from scheduling.models.domain import Employee, TimeRange
from scheduling.models.results import NoAvailabilityWithinHorizon, NotFound, Ok
from scheduling.services.availability import AvailabilityCalculator, slot_grid
from scheduling.services.facade import SchedulingFacade
from scheduling.tests.helpers import (
    BEARD,
    EMRE,
    HAIRCUT,
    MONDAY,
    SATURDAY_BEFORE,
    SUNDAY,
    TUESDAY,
    VENUE_ID,
    FixedClock,
    at,
    make_venue,
    slot_at,
)


async def test_monday_has_nine_hourly_slots_with_booked_one_unavailable(
    facade: SchedulingFacade,
) -> None:
    booked = await facade.book("u1", VENUE_ID, HAIRCUT, EMRE, slot_at(MONDAY, 10))
    assert isinstance(booked, Ok)

    result = await facade.list_slots(VENUE_ID, HAIRCUT, MONDAY)

    assert isinstance(result, Ok)
    slots = result.value
    assert [s.label for s in slots] == [f"{h:02d}:00" for h in range(9, 18)]
    assert [s.is_available for s in slots] == [h != 10 for h in range(9, 18)]


async def test_slots_are_ordered_and_do_not_overlap(facade: SchedulingFacade) -> None:
    result = await facade.list_slots(VENUE_ID, BEARD, MONDAY)

    assert isinstance(result, Ok)
    slots = result.value
    assert len(slots) == 18
    for current, following in zip(slots, slots[1:]):
        assert current.end_time == following.start_time
        assert following.start_time - current.start_time == timedelta(minutes=30)
    assert slots[-1].end_time == at(MONDAY, 18)


async def test_closed_day_has_no_slots(facade: SchedulingFacade) -> None:
    assert await facade.list_slots(VENUE_ID, HAIRCUT, SUNDAY) == Ok([])


async def test_past_date_has_no_slots(facade: SchedulingFacade) -> None:
    assert await facade.list_slots(VENUE_ID, HAIRCUT, SATURDAY_BEFORE) == Ok([])


async def test_started_slots_today_are_unavailable(
    facade: SchedulingFacade, clock: FixedClock
) -> None:
    clock.now = at(MONDAY, 10, 30)

    result = await facade.list_slots(VENUE_ID, HAIRCUT, MONDAY)

    assert isinstance(result, Ok)
    availability = {s.label: s.is_available for s in result.value}
    assert availability["09:00"] is False
    assert availability["10:00"] is False
    assert availability["11:00"] is True


async def test_unknown_entities_are_not_found(facade: SchedulingFacade) -> None:
    assert await facade.list_slots("nope", HAIRCUT, MONDAY) == NotFound("Venue", "nope")
    assert await facade.list_slots(VENUE_ID, "nope", MONDAY) == NotFound("Service", "nope")
    assert await facade.list_slots(VENUE_ID, HAIRCUT, MONDAY, "nope") == NotFound(
        "Employee", "nope"
    )


async def test_employee_who_does_not_perform_service_is_not_found(
    appointment_store: InMemoryAppointmentStore, clock: FixedClock
) -> None:
    venue = make_venue(employees=[Employee("ali", "Ali", frozenset({BEARD}))])
    calculator = AvailabilityCalculator(InMemoryCatalog([venue]), appointment_store, clock=clock)

    result = await calculator.compute_slots(VENUE_ID, HAIRCUT, MONDAY, "ali")

    assert isinstance(result, NotFound)


async def test_any_employee_keeps_slot_open_while_one_is_free(
    appointment_store: InMemoryAppointmentStore, clock: FixedClock
) -> None:
    venue = make_venue(employees=[Employee(EMRE, "Emre"), Employee("ali", "Ali")])
    facade = SchedulingFacade(
        InMemoryCatalog([venue]), appointment_store, InMemoryWaitlistStore(), clock=clock
    )
    await facade.book("u1", VENUE_ID, HAIRCUT, EMRE, slot_at(MONDAY, 10))

    any_result = await facade.list_slots(VENUE_ID, HAIRCUT, MONDAY)
    emre_result = await facade.list_slots(VENUE_ID, HAIRCUT, MONDAY, EMRE)

    assert isinstance(any_result, Ok) and isinstance(emre_result, Ok)
    assert any_result.value[1].is_available is True
    assert emre_result.value[1].is_available is False


async def test_longer_appointment_blocks_every_overlapping_short_slot(
    facade: SchedulingFacade,
) -> None:
    await facade.book("u1", VENUE_ID, HAIRCUT, EMRE, slot_at(MONDAY, 10))

    result = await facade.list_slots(VENUE_ID, BEARD, MONDAY)

    assert isinstance(result, Ok)
    unavailable = [s.label for s in result.value if not s.is_available]
    assert unavailable == ["10:00", "10:30"]


async def test_slot_labels_use_venue_local_time(
    appointment_store: InMemoryAppointmentStore, clock: FixedClock
) -> None:
    venue = make_venue(timezone_name="Europe/Istanbul")
    calculator = AvailabilityCalculator(InMemoryCatalog([venue]), appointment_store, clock=clock)

    result = await calculator.compute_slots(VENUE_ID, HAIRCUT, TUESDAY)

    assert isinstance(result, Ok)
    first = result.value[0]
    assert first.label == "09:00"
    assert first.start_time == at(TUESDAY, 6)


def test_slot_grid_last_slot_ends_by_closing() -> None:
    venue = make_venue(haircut_minutes=100)

    grid = slot_grid(venue, venue.services[HAIRCUT], MONDAY)

    assert [s.label for s in grid] == ["09:00", "10:40", "12:20", "14:00", "15:40"]
    assert grid[-1].end_time <= at(MONDAY, 18)


async def test_next_available_date_skips_closed_sunday(facade: SchedulingFacade) -> None:
    assert await facade.next_available_date(VENUE_ID, HAIRCUT, SUNDAY) == Ok(MONDAY)


async def test_next_available_date_never_starts_in_the_past(facade: SchedulingFacade) -> None:
    assert await facade.next_available_date(VENUE_ID, HAIRCUT, SATURDAY_BEFORE) == Ok(MONDAY)


async def test_next_available_date_skips_fully_booked_day(
    facade: SchedulingFacade, book_whole_day
) -> None:
    await book_whole_day(MONDAY)

    assert await facade.next_available_date(VENUE_ID, HAIRCUT, MONDAY) == Ok(TUESDAY)


async def test_next_available_date_is_bounded_by_horizon(
    appointment_store: InMemoryAppointmentStore, clock: FixedClock
) -> None:
    never_open = make_venue(open_days=())
    calculator = AvailabilityCalculator(
        InMemoryCatalog([never_open]), appointment_store, horizon_days=14, clock=clock
    )

    result = await calculator.find_next_available_date(VENUE_ID, HAIRCUT, MONDAY)

    assert result == NoAvailabilityWithinHorizon(from_date=MONDAY, horizon_days=14)


async def test_slots_in_band_filters_by_local_start(facade: SchedulingFacade) -> None:
    result = await facade.availability.slots_in_band(
        VENUE_ID, HAIRCUT, MONDAY, TimeRange.AFTERNOON
    )

    assert isinstance(result, Ok)
    assert [s.label for s in result.value] == ["12:00", "13:00", "14:00", "15:00", "16:00"]


async def test_free_employees_excludes_busy_employee(
    appointment_store: InMemoryAppointmentStore, clock: FixedClock
) -> None:
    venue = make_venue(employees=[Employee(EMRE, "Emre"), Employee("ali", "Ali")])
    facade = SchedulingFacade(
        InMemoryCatalog([venue]), appointment_store, InMemoryWaitlistStore(), clock=clock
    )
    await facade.book("u1", VENUE_ID, HAIRCUT, EMRE, slot_at(MONDAY, 10))

    free = await facade.availability.free_employees(
        venue, venue.services[HAIRCUT], at(MONDAY, 10)
    )

    assert [e.id for e in free] == ["ali"]
