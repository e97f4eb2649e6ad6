from __future__ import annotations

from datetime import datetime, time, timedelta, timezone

import pytest

from scheduling.db.interfaces import occupancy_blocks
from scheduling.models.domain import OpeningHours, TimeRange, as_utc, parse_opening_hours
from scheduling.tests.helpers import MONDAY, at, make_venue


def test_parse_opening_hours_skips_closed_days() -> None:
    hours = parse_opening_hours(
        [
            {"day": "Monday", "isOpen": True, "openTime": "09:00", "closeTime": "18:00"},
            {"day": "sunday", "isOpen": False, "openTime": None, "closeTime": None},
        ]
    )

    assert hours == {0: OpeningHours(time(9, 0), time(18, 0))}


def test_parse_opening_hours_rejects_unknown_day() -> None:
    with pytest.raises(ValueError):
        parse_opening_hours([{"day": "Someday", "isOpen": True}])


def test_opening_hours_must_close_after_opening() -> None:
    with pytest.raises(ValueError):
        OpeningHours(time(18, 0), time(9, 0))


@pytest.mark.parametrize(
    ("band", "local_time", "expected"),
    [
        (TimeRange.MORNING, time(11, 59), True),
        (TimeRange.MORNING, time(12, 0), False),
        (TimeRange.AFTERNOON, time(12, 0), True),
        (TimeRange.AFTERNOON, time(17, 0), False),
        (TimeRange.EVENING, time(17, 0), True),
        (TimeRange.ANY, time(9, 0), True),
    ],
)
def test_time_range_boundaries(band: TimeRange, local_time: time, expected: bool) -> None:
    assert band.contains(local_time) is expected


def test_venue_today_uses_venue_time_zone() -> None:
    venue = make_venue(timezone_name="Asia/Tokyo")
    late_sunday_utc = datetime(2030, 1, 6, 20, 0, tzinfo=timezone.utc)

    assert venue.today(late_sunday_utc) == MONDAY


def test_as_utc_treats_naive_as_utc() -> None:
    assert as_utc(datetime(2030, 1, 7, 10, 0)) == at(MONDAY, 10)


def test_occupancy_blocks_are_aligned_to_quantum() -> None:
    blocks = occupancy_blocks(at(MONDAY, 10, 2), at(MONDAY, 10, 12), 5)

    assert blocks == [at(MONDAY, 10, 0), at(MONDAY, 10, 5), at(MONDAY, 10, 10)]


def test_occupancy_blocks_reject_empty_interval() -> None:
    with pytest.raises(ValueError):
        occupancy_blocks(at(MONDAY, 10), at(MONDAY, 10), 5)


def test_occupancy_blocks_cover_whole_hour() -> None:
    blocks = occupancy_blocks(at(MONDAY, 10), at(MONDAY, 11), 5)

    assert len(blocks) == 12
    assert blocks[-1] == at(MONDAY, 10, 55)
    assert all(b - a == timedelta(minutes=5) for a, b in zip(blocks, blocks[1:]))
