"""
Block Manager - Core time block operations for Time Truth.

Manages the creation, completion, and movement of time blocks.
Enforces invariants:
- Every block has end > start, both timezone-aware
- No two blocks of one schedule overlap ([start, end) semantics)
- Completed and missed are mutually exclusive
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from enum import Enum

from timeblock.errors import (
    BlockNotFoundError,
    InvalidIntervalError,
    OverlapError,
    ScheduleNotFoundError,
)

logger = logging.getLogger(__name__)


class BlockType(str, Enum):
    TASK = "task"
    HABIT = "habit"
    MEETING = "meeting"
    FOCUS = "focus"
    BREAK = "break"

    @classmethod
    def from_item_type(cls, item_type: str | None) -> "BlockType":
        """Map a schedulable item type to a block type; unknown types become tasks."""
        mapping = {"habit": cls.HABIT, "meeting": cls.MEETING}
        return mapping.get((item_type or "").lower(), cls.TASK)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def validate_interval(start: datetime, end: datetime) -> None:
    """Reject naive datetimes and empty or inverted intervals."""
    if start.tzinfo is None or end.tzinfo is None:
        raise InvalidIntervalError("Block times must be timezone-aware")
    if end <= start:
        raise InvalidIntervalError(
            f"End time {end.isoformat()} must be after start time {start.isoformat()}"
        )


@dataclass
class TimeBlock:
    id: str
    schedule_id: str
    block_type: BlockType
    title: str
    start_time: datetime
    end_time: datetime
    reference_id: str | None = None
    completed: bool = False
    missed: bool = False
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def duration_min(self) -> int:
        """Block duration in whole minutes."""
        return int(self.duration.total_seconds() // 60)

    @property
    def is_pending(self) -> bool:
        return not self.completed and not self.missed

    def overlaps(self, start: datetime, end: datetime) -> bool:
        # Half-open: touching intervals do not overlap
        return self.start_time < end and start < self.end_time

    def is_past_due(self, now: datetime) -> bool:
        """End has passed and the block was never completed."""
        return not self.completed and self.end_time <= now


@dataclass(frozen=True)
class TimeSlot:
    """A free interval inside a working window."""

    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def duration_min(self) -> int:
        return int(self.duration.total_seconds() // 60)


@dataclass
class Conflict:
    block_a_id: str
    block_b_id: str
    overlap_start: datetime
    overlap_end: datetime


@dataclass
class Schedule:
    """
    All time blocks of one user on one calendar day.

    Blocks are kept ordered by start time. Counters are derived from the
    block list on every read.
    """

    user_id: str
    date: date
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    blocks: list[TimeBlock] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        if isinstance(self.date, datetime):
            self.date = self.date.date()
        self._sort()

    # ==================== Derived counters ====================

    @property
    def total_scheduled_minutes(self) -> int:
        return sum(b.duration_min for b in self.blocks)

    @property
    def completed_count(self) -> int:
        return sum(1 for b in self.blocks if b.completed)

    @property
    def missed_count(self) -> int:
        return sum(1 for b in self.blocks if b.missed)

    @property
    def pending_count(self) -> int:
        return sum(1 for b in self.blocks if b.is_pending)

    @property
    def is_empty(self) -> bool:
        return not self.blocks

    def utilization_pct(self, day_start: datetime, day_end: datetime) -> float:
        """Scheduled time inside the window as a percentage of the window."""
        window = (day_end - day_start).total_seconds()
        if window <= 0:
            return 0.0
        busy = 0.0
        for block in self.blocks:
            start = max(block.start_time, day_start)
            end = min(block.end_time, day_end)
            if end > start:
                busy += (end - start).total_seconds()
        return round(busy / window * 100, 2)

    # ==================== Mutations ====================

    def add_block(
        self,
        block_type: BlockType | str,
        title: str,
        start: datetime,
        end: datetime,
        reference_id: str | None = None,
    ) -> TimeBlock:
        """
        Add a new block.

        Raises:
            InvalidIntervalError: end <= start or naive datetimes
            OverlapError: the interval overlaps an existing block
        """
        validate_interval(start, end)
        self._check_overlap(start, end)

        block = TimeBlock(
            id=uuid.uuid4().hex,
            schedule_id=self.id,
            block_type=BlockType(block_type),
            title=title,
            start_time=start,
            end_time=end,
            reference_id=reference_id,
        )
        self.blocks.append(block)
        self._sort()
        self._touch()
        return block

    def find_block(self, block_id: str) -> TimeBlock:
        for block in self.blocks:
            if block.id == block_id:
                return block
        raise BlockNotFoundError(block_id)

    def remove_block(self, block_id: str) -> TimeBlock:
        block = self.find_block(block_id)
        self.blocks.remove(block)
        self._touch()
        return block

    def mark_completed(self, block_id: str) -> TimeBlock:
        block = self.find_block(block_id)
        block.completed = True
        block.missed = False
        block.updated_at = _utcnow()
        self._touch()
        return block

    def mark_missed(self, block_id: str) -> TimeBlock:
        """Mark a block missed. Completed blocks are terminal and stay completed."""
        block = self.find_block(block_id)
        if block.completed:
            return block
        block.missed = True
        block.updated_at = _utcnow()
        self._touch()
        return block

    def reschedule(self, block_id: str, new_start: datetime, new_end: datetime) -> TimeBlock:
        """
        Move a block to a new interval and clear its missed flag.

        The block itself is excluded from the overlap check.
        """
        block = self.find_block(block_id)
        validate_interval(new_start, new_end)
        self._check_overlap(new_start, new_end, exclude_id=block_id)

        block.start_time = new_start
        block.end_time = new_end
        block.missed = False
        block.updated_at = _utcnow()
        self._sort()
        self._touch()
        return block

    # ==================== Diagnostics ====================

    def get_conflicts(self) -> list[Conflict]:
        """
        Detect overlapping blocks (should never happen if invariants hold).
        """
        conflicts = []
        for i, a in enumerate(self.blocks):
            for b in self.blocks[i + 1 :]:
                if b.start_time >= a.end_time:
                    break
                conflicts.append(
                    Conflict(
                        block_a_id=a.id,
                        block_b_id=b.id,
                        overlap_start=max(a.start_time, b.start_time),
                        overlap_end=min(a.end_time, b.end_time),
                    )
                )
        return conflicts

    def _check_overlap(self, start: datetime, end: datetime, exclude_id: str | None = None):
        for existing in self.blocks:
            if existing.id == exclude_id:
                continue
            if existing.overlaps(start, end):
                raise OverlapError(
                    f"Overlaps with existing block {existing.id} "
                    f"({existing.start_time.isoformat()} - {existing.end_time.isoformat()})",
                    conflicting_block_id=existing.id,
                )

    def _sort(self):
        self.blocks.sort(key=lambda b: b.start_time)

    def _touch(self):
        self.updated_at = _utcnow()


class BlockManager:
    """
    Manages time blocks through the schedule store.

    Responsibilities:
    - Load the schedule for (user, date), apply one mutation, save it back
    - Drop external event links when a block goes away
    - Report invariant problems found in stored data
    """

    def __init__(self, store):
        self.store = store

    def get_schedule(self, user_id: str, day: date) -> Schedule:
        """Stored schedule for the day, or a fresh unsaved one."""
        schedule = self.store.load(user_id, day)
        if schedule is None:
            schedule = Schedule(user_id=user_id, date=day)
        return schedule

    def _require_schedule(self, user_id: str, day: date) -> Schedule:
        schedule = self.store.load(user_id, day)
        if schedule is None:
            raise ScheduleNotFoundError(f"No schedule for {user_id} on {day.isoformat()}")
        return schedule

    def add_block(
        self,
        user_id: str,
        day: date,
        block_type: BlockType | str,
        title: str,
        start: datetime,
        end: datetime,
        reference_id: str | None = None,
    ) -> TimeBlock:
        schedule = self.get_schedule(user_id, day)
        block = schedule.add_block(block_type, title, start, end, reference_id)
        self.store.save(schedule)
        logger.info(
            "Added %s block %s for %s on %s", block.block_type.value, block.id, user_id, day
        )
        return block

    def remove_block(self, user_id: str, day: date, block_id: str) -> TimeBlock:
        schedule = self._require_schedule(user_id, day)
        block = schedule.remove_block(block_id)
        self.store.save(schedule)
        self.store.delete_links(user_id, block_id=block_id)
        logger.info("Removed block %s for %s on %s", block_id, user_id, day)
        return block

    def complete_block(self, user_id: str, day: date, block_id: str) -> TimeBlock:
        schedule = self._require_schedule(user_id, day)
        block = schedule.mark_completed(block_id)
        self.store.save(schedule)
        return block

    def miss_block(self, user_id: str, day: date, block_id: str) -> TimeBlock:
        schedule = self._require_schedule(user_id, day)
        block = schedule.mark_missed(block_id)
        self.store.save(schedule)
        return block

    def reschedule_block(
        self,
        user_id: str,
        day: date,
        block_id: str,
        new_start: datetime,
        new_end: datetime,
    ) -> TimeBlock:
        schedule = self._require_schedule(user_id, day)
        block = schedule.reschedule(block_id, new_start, new_end)
        self.store.save(schedule)
        logger.info(
            "Rescheduled block %s to %s - %s",
            block_id,
            new_start.isoformat(),
            new_end.isoformat(),
        )
        return block

    def get_conflicts(self, user_id: str, day: date) -> list[Conflict]:
        return self.get_schedule(user_id, day).get_conflicts()
