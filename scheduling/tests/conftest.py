from __future__ import annotations

from datetime import date
from unittest.mock import AsyncMock

import pytest

from scheduling.catalog import InMemoryCatalog
from scheduling.db.memory import InMemoryAppointmentStore, InMemoryWaitlistStore
from scheduling.models.domain import Venue
from scheduling.models.results import Ok
from scheduling.services.facade import SchedulingFacade
from scheduling.tests.helpers import EMRE, HAIRCUT, VENUE_ID, FixedClock, make_venue, sequential_ids


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def venue() -> Venue:
    return make_venue()


@pytest.fixture
def catalog(venue: Venue) -> InMemoryCatalog:
    return InMemoryCatalog([venue])


@pytest.fixture
def appointment_store() -> InMemoryAppointmentStore:
    return InMemoryAppointmentStore()


@pytest.fixture
def waitlist_store() -> InMemoryWaitlistStore:
    return InMemoryWaitlistStore()


@pytest.fixture
def notifier() -> AsyncMock:
    notifier = AsyncMock()
    notifier.notify_opening.return_value = True
    return notifier


@pytest.fixture
def facade(
    catalog: InMemoryCatalog,
    appointment_store: InMemoryAppointmentStore,
    waitlist_store: InMemoryWaitlistStore,
    notifier: AsyncMock,
    clock: FixedClock,
) -> SchedulingFacade:
    return SchedulingFacade(
        catalog,
        appointment_store,
        waitlist_store,
        notifier=notifier,
        clock=clock,
        id_factory=sequential_ids(),
    )


@pytest.fixture
def book_whole_day(facade: SchedulingFacade):
    """Book every haircut slot of a day for another user."""

    async def _book(day: date, user_id: str = "someone-else") -> None:
        slots = await facade.list_slots(VENUE_ID, HAIRCUT, day)
        assert isinstance(slots, Ok)
        for slot in slots.value:
            if slot.is_available:
                result = await facade.book(user_id, VENUE_ID, HAIRCUT, EMRE, slot)
                assert isinstance(result, Ok)

    return _book
