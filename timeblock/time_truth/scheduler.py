"""
Scheduler - Auto-schedule items into free slots.

The core scheduling engine for Time Truth. Greedy first-fit: items are
taken in rank order, each goes into the earliest slot with enough room,
and the slot shrinks from the front. Deterministic and linear; it does
not try to minimize fragmentation.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta

from timeblock.errors import InvariantViolation
from timeblock.priority import PriorityScorer, PrioritySignals
from timeblock.time_truth.block_manager import BlockType, Schedule, TimeSlot

logger = logging.getLogger(__name__)


@dataclass
class SchedulableItem:
    """A candidate to place. Built per run, never persisted."""

    id: str
    type: str
    title: str
    duration: timedelta
    priority: int = 5  # 1 = urgent ... 5 = none
    due_date: datetime | None = None
    streak_risk: float = 0.0
    meeting_cadence: float = 0.0
    score: float | None = None
    explanation: str = ""

    def signals(self) -> PrioritySignals:
        return PrioritySignals(
            priority_label=self.priority,
            due_date=self.due_date,
            duration=self.duration,
            streak_risk=self.streak_risk,
            meeting_cadence=self.meeting_cadence,
        )


@dataclass
class ItemScheduleResult:
    item_id: str
    item_type: str
    title: str
    scheduled: bool
    block_id: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    reason: str = ""


@dataclass
class AutoScheduleResult:
    schedule_id: str
    scheduled_count: int = 0
    failed_count: int = 0
    placed_block_ids: list[str] = field(default_factory=list)
    failed_item_ids: list[str] = field(default_factory=list)
    results: list[ItemScheduleResult] = field(default_factory=list)
    total_scheduled: timedelta = timedelta(0)
    utilization_pct: float = 0.0

    def to_dict(self) -> dict:
        return {
            "schedule_id": self.schedule_id,
            "scheduled_count": self.scheduled_count,
            "failed_count": self.failed_count,
            "placed_block_ids": list(self.placed_block_ids),
            "failed_item_ids": list(self.failed_item_ids),
            "total_scheduled_min": int(self.total_scheduled.total_seconds() // 60),
            "utilization_pct": self.utilization_pct,
        }


def break_before(start: datetime, min_break: timedelta, work_start: datetime | None) -> datetime:
    """Push a candidate start past the minimum break unless it opens the working day."""
    if min_break and start != work_start:
        return start + min_break
    return start


def first_fit(
    slots: Iterable[TimeSlot],
    duration: timedelta,
    not_before: datetime | None = None,
    min_break: timedelta = timedelta(0),
    work_start: datetime | None = None,
) -> TimeSlot | None:
    """
    Earliest interval of exactly `duration` inside the given slots.

    Slots are scanned chronologically; not_before moves a slot's usable
    start forward, and every start except work_start is preceded by
    min_break.
    """
    for slot in slots:
        start = slot.start
        if not_before is not None and start < not_before:
            start = not_before
        start = break_before(start, min_break, work_start)
        end = start + duration
        if end <= slot.end:
            return TimeSlot(start=start, end=end)
    return None


class AutoScheduler:
    """
    Places ranked items into free slots of a schedule.

    Constraints:
    - Items are placed in the order given; ties keep input order
    - A slot is consumed from the front
    - An item that fits no remaining slot is reported, never dropped
    """

    def __init__(self, scorer: PriorityScorer | None = None, min_break: timedelta = timedelta(0)):
        self.scorer = scorer or PriorityScorer()
        self.min_break = min_break

    def rank_items(
        self, items: Sequence[SchedulableItem], now: datetime | None = None
    ) -> list[SchedulableItem]:
        """
        Order items by descending score.

        Items without a score are scored against `now` into a copy; the
        caller's items are left untouched. Stable: items with equal scores
        keep their input order.
        """
        ranked = []
        for item in items:
            if item.score is None:
                scored = self.scorer.score(item.signals(), now)
                item = replace(item, score=scored.score, explanation=scored.explanation)
            ranked.append(item)
        return sorted(ranked, key=lambda item: -item.score)

    def schedule(
        self,
        schedule: Schedule,
        items: Iterable[SchedulableItem],
        slots: Iterable[TimeSlot],
        window: tuple[datetime, datetime] | None = None,
    ) -> AutoScheduleResult:
        """
        Place items into slots, adding one block per placed item.

        Args:
            schedule: Schedule receiving the new blocks
            items: Items in rank order
            slots: Free slots, chronological (from the slot finder)
            window: Working window; its start is exempt from min_break and it
                bounds the utilization figure

        Returns:
            AutoScheduleResult with per-item outcomes
        """
        # Remaining capacity per slot as mutable [start, end] pairs
        remaining = [[slot.start, slot.end] for slot in slots]
        if window is not None:
            work_start = window[0]
        else:
            work_start = remaining[0][0] if remaining else None
        result = AutoScheduleResult(schedule_id=schedule.id)

        for item in items:
            item_result = self._place(schedule, item, remaining, work_start)
            result.results.append(item_result)

            if item_result.scheduled:
                result.scheduled_count += 1
                result.placed_block_ids.append(item_result.block_id)
                result.total_scheduled += item_result.end_time - item_result.start_time
            else:
                result.failed_count += 1
                result.failed_item_ids.append(item.id)

        if window is not None:
            result.utilization_pct = schedule.utilization_pct(*window)

        logger.info(
            "Auto-schedule completed for %s on %s: scheduled=%d failed=%d",
            schedule.user_id,
            schedule.date,
            result.scheduled_count,
            result.failed_count,
        )
        return result

    def _place(
        self,
        schedule: Schedule,
        item: SchedulableItem,
        remaining: list[list[datetime]],
        work_start: datetime | None,
    ) -> ItemScheduleResult:
        item_result = ItemScheduleResult(
            item_id=item.id, item_type=item.type, title=item.title, scheduled=False
        )

        if item.duration <= timedelta(0):
            item_result.reason = "item has no duration"
            return item_result

        for slot in remaining:
            start = break_before(slot[0], self.min_break, work_start)
            end = slot[1]
            if end - start < item.duration:
                continue

            block_end = start + item.duration
            try:
                block = schedule.add_block(
                    BlockType.from_item_type(item.type),
                    item.title,
                    start,
                    block_end,
                    reference_id=item.id,
                )
            except InvariantViolation as e:
                # Slot went stale (schedule changed since slots were computed)
                logger.warning("Could not place %s at %s: %s", item.id, start.isoformat(), e)
                item_result.reason = str(e)
                continue

            slot[0] = block_end
            item_result.scheduled = True
            item_result.block_id = block.id
            item_result.start_time = start
            item_result.end_time = block_end
            item_result.reason = ""
            return item_result

        if not item_result.reason:
            item_result.reason = "no available time slots"
        return item_result
