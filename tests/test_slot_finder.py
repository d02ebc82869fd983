"""
Tests for the slot finder and working window helpers.
"""

from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

import pytest
from conftest import DAY, at

from timeblock.errors import InvalidIntervalError
from timeblock.time_truth.block_manager import Schedule, TimeSlot
from timeblock.time_truth.slots import day_window, find_available_slots, free_minutes


def _schedule(*intervals):
    schedule = Schedule(user_id="u1", date=DAY)
    for start, end in intervals:
        schedule.add_block("task", "busy", start, end)
    return schedule


class TestFindAvailableSlots:
    """Gaps between blocks inside the window."""

    def test_gaps_around_meeting(self):
        """08:00-18:00 with a meeting 10:00-11:00 leaves 08-10 and 11-18."""
        schedule = _schedule((at(10), at(11)))

        slots = find_available_slots(schedule.blocks, at(8), at(18))

        assert slots == [TimeSlot(at(8), at(10)), TimeSlot(at(11), at(18))]
        assert [s.duration_min for s in slots] == [120, 420]

    def test_empty_schedule_is_one_slot(self):
        slots = find_available_slots([], at(9), at(17))
        assert slots == [TimeSlot(at(9), at(17))]

    def test_min_duration_filters_short_gaps(self):
        schedule = _schedule((at(9), at(10)), (at(10, 20), at(12)))

        slots = find_available_slots(schedule.blocks, at(9), at(13), timedelta(minutes=30))

        assert slots == [TimeSlot(at(12), at(13))]

    def test_blocks_clipped_to_window(self):
        schedule = _schedule((at(7), at(9, 30)), (at(16), at(19)))
        slots = find_available_slots(schedule.blocks, at(9), at(17))
        assert slots == [TimeSlot(at(9, 30), at(16))]

    def test_blocks_outside_window_ignored(self):
        schedule = _schedule((at(6), at(7)), (at(20), at(21)))
        slots = find_available_slots(schedule.blocks, at(9), at(17))
        assert slots == [TimeSlot(at(9), at(17))]

    def test_fully_booked_window(self):
        schedule = _schedule((at(9), at(13)), (at(13), at(17)))
        assert find_available_slots(schedule.blocks, at(9), at(17)) == []

    def test_excluded_block_counts_as_free(self):
        schedule = _schedule((at(10), at(11)), (at(12), at(13)))
        moving = schedule.blocks[0]

        slots = find_available_slots(
            schedule.blocks, at(9), at(17), exclude_block_id=moving.id
        )

        assert slots == [TimeSlot(at(9), at(12)), TimeSlot(at(13), at(17))]

    def test_invalid_window(self):
        with pytest.raises(InvalidIntervalError):
            find_available_slots([], at(17), at(9))

    def test_free_minutes(self):
        schedule = _schedule((at(10), at(11)))
        slots = find_available_slots(schedule.blocks, at(9), at(17))
        assert free_minutes(slots) == 420


class TestDayWindow:
    """Working window built from configured work hours."""

    def test_utc_window(self):
        start, end = day_window(DAY, time(9), time(17), UTC)
        assert start == at(9)
        assert end == at(17)

    def test_zone_window_returned_in_utc(self):
        start, end = day_window(DAY, time(9), time(17), ZoneInfo("Europe/Berlin"))
        assert start == datetime(2026, 3, 2, 8, tzinfo=UTC)
        assert end == datetime(2026, 3, 2, 16, tzinfo=UTC)
        assert start.tzinfo is UTC

    def test_dst_change_inside_window(self):
        """Clocks jump forward at 02:00 local, so 00:00-06:00 lasts 5 hours."""
        start, end = day_window(date(2026, 3, 29), time(0), time(6), ZoneInfo("Europe/Berlin"))
        assert end - start == timedelta(hours=5)

    def test_inverted_hours_rejected(self):
        with pytest.raises(InvalidIntervalError):
            day_window(DAY, time(17), time(9), UTC)
