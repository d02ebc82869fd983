"""
Slot Finder - free intervals inside a working window.

Busy intervals come from a schedule's blocks, which the model keeps
ordered by start time, so one left-to-right walk is enough.
"""

from collections.abc import Iterable
from datetime import UTC, date, datetime, time, timedelta, tzinfo

from timeblock.errors import InvalidIntervalError
from timeblock.time_truth.block_manager import TimeBlock, TimeSlot, validate_interval


def find_available_slots(
    blocks: Iterable[TimeBlock],
    day_start: datetime,
    day_end: datetime,
    min_duration: timedelta = timedelta(0),
    exclude_block_id: str | None = None,
) -> list[TimeSlot]:
    """
    Find free slots of at least min_duration in [day_start, day_end).

    Blocks reaching outside the window are clipped to it; blocks entirely
    outside it are ignored. Returns an empty list when nothing fits.

    Args:
        blocks: Blocks ordered by start time
        day_start: Window start (timezone-aware)
        day_end: Window end (timezone-aware)
        min_duration: Shortest slot worth returning
        exclude_block_id: Block to treat as free (used when moving it)
    """
    validate_interval(day_start, day_end)

    slots: list[TimeSlot] = []
    cursor = day_start

    for block in blocks:
        if block.id == exclude_block_id:
            continue
        busy_start = max(block.start_time, day_start)
        busy_end = min(block.end_time, day_end)
        if busy_end <= busy_start:
            continue

        if busy_start > cursor and busy_start - cursor >= min_duration:
            slots.append(TimeSlot(start=cursor, end=busy_start))
        cursor = max(cursor, busy_end)

    if day_end > cursor and day_end - cursor >= min_duration:
        slots.append(TimeSlot(start=cursor, end=day_end))

    return slots


def free_minutes(slots: Iterable[TimeSlot]) -> int:
    return sum(slot.duration_min for slot in slots)


def day_window(day: date, work_start: time, work_end: time, tz: tzinfo) -> tuple[datetime, datetime]:
    """
    Build the [start, end) working window for a calendar day.

    Both ends are localized separately and returned in UTC, so a DST change
    inside the window makes it an hour longer or shorter in absolute time.
    """
    start = datetime.combine(day, work_start, tzinfo=tz).astimezone(UTC)
    end = datetime.combine(day, work_end, tzinfo=tz).astimezone(UTC)
    if end <= start:
        raise InvalidIntervalError(f"Work end {work_end} must be after work start {work_start}")
    return start, end
