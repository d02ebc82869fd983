"""
Rollover - Repair blocks that were missed.

A block is missed once its end has passed without completion. Detection
happens when a schedule is read, never on a timer. Repair is on demand:
1. Find missed blocks (chronological)
2. Find free time in the rest of the day (or another day)
3. Move each block into the first slot that fits its duration
4. Record one RescheduleAttempt per block with the outcome

No automatic retries. A no_slot or failed attempt can be followed by a new
attempt later (for example on the next day).
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from enum import Enum

from timeblock.errors import InvariantViolation
from timeblock.time_truth.block_manager import Schedule, TimeBlock
from timeblock.time_truth.scheduler import first_fit
from timeblock.time_truth.slots import find_available_slots

logger = logging.getLogger(__name__)


class AttemptOutcome(str, Enum):
    PLACED = "placed"
    NO_SLOT = "no_slot"
    FAILED = "failed"


@dataclass
class RescheduleAttempt:
    id: str
    user_id: str
    schedule_id: str
    block_id: str
    schedule_date: date
    attempted_at: datetime
    outcome: AttemptOutcome
    old_start: datetime | None = None
    old_end: datetime | None = None
    new_start: datetime | None = None
    new_end: datetime | None = None
    failure_reason: str | None = None


@dataclass
class RescheduleOutcome:
    block_id: str
    title: str
    outcome: AttemptOutcome
    new_start: datetime | None = None
    new_end: datetime | None = None
    new_block_id: str | None = None
    reason: str = ""

    @property
    def placed(self) -> bool:
        return self.outcome is AttemptOutcome.PLACED


class RescheduleEngine:
    """
    Detects missed blocks and moves them into free time.

    This keeps missed work from getting lost. The attempt log is any object
    with append_attempt(attempt); the schedule store is one.
    """

    def __init__(self, attempt_log=None, min_break: timedelta = timedelta(0), clock=None):
        self.attempt_log = attempt_log
        self.min_break = min_break
        self._clock = clock or (lambda: datetime.now(UTC))

    def detect_missed(self, schedule: Schedule, now: datetime | None = None) -> list[TimeBlock]:
        """
        Mark past-due blocks missed and return every missed block.

        Completed blocks are never selected, however late it is.
        """
        now = now or self._clock()
        for block in schedule.blocks:
            if block.is_past_due(now) and not block.missed:
                schedule.mark_missed(block.id)
        return [b for b in schedule.blocks if b.missed and not b.completed]

    def preview(self, schedule: Schedule, now: datetime | None = None) -> dict:
        """
        Preview what would be repaired without touching the schedule.
        """
        now = now or self._clock()
        candidates = [
            b for b in schedule.blocks if not b.completed and (b.missed or b.is_past_due(now))
        ]
        return {
            "date": schedule.date.isoformat(),
            "blocks_to_reschedule": len(candidates),
            "blocks": [
                {
                    "id": b.id,
                    "title": b.title[:50],
                    "start_time": b.start_time.isoformat(),
                    "end_time": b.end_time.isoformat(),
                    "duration_min": b.duration_min,
                }
                for b in candidates
            ],
        }

    def auto_reschedule(
        self,
        schedule: Schedule,
        window_start: datetime,
        window_end: datetime,
        now: datetime | None = None,
        after: datetime | None = None,
        target: Schedule | None = None,
    ) -> list[RescheduleOutcome]:
        """
        Move every missed block into free time.

        Args:
            schedule: Schedule holding the missed blocks
            window_start: Working window start of the day receiving blocks
            window_end: Working window end of the day receiving blocks
            now: Current instant (missed detection and earliest placement)
            after: Earliest placement instead of now
            target: Another day's schedule to move blocks into; blocks are
                then replaced by a new block there and removed here

        Returns:
            One RescheduleOutcome per missed block
        """
        now = now or self._clock()
        missed = self.detect_missed(schedule, now)
        if not missed:
            return []

        receiving = target if target is not None else schedule
        earliest = max(window_start, after if after is not None else now)

        outcomes = []
        for block in missed:
            old_start, old_end = block.start_time, block.end_time
            outcome = self._repair(schedule, receiving, block, window_end, earliest, window_start)
            self._record(schedule, block.id, old_start, old_end, outcome)
            outcomes.append(outcome)

        placed = sum(1 for o in outcomes if o.placed)
        logger.info(
            "Reschedule for %s on %s: placed=%d unplaced=%d",
            schedule.user_id,
            schedule.date,
            placed,
            len(outcomes) - placed,
        )
        return outcomes

    def _repair(
        self,
        source: Schedule,
        receiving: Schedule,
        block: TimeBlock,
        window_end: datetime,
        earliest: datetime,
        window_start: datetime,
    ) -> RescheduleOutcome:
        duration = block.duration
        outcome = RescheduleOutcome(
            block_id=block.id, title=block.title, outcome=AttemptOutcome.NO_SLOT
        )

        if earliest >= window_end:
            outcome.reason = "no time left in window"
            return outcome

        slots = find_available_slots(
            receiving.blocks,
            earliest,
            window_end,
            duration,
            exclude_block_id=block.id if receiving is source else None,
        )
        candidate = first_fit(
            slots,
            duration,
            not_before=earliest,
            min_break=self.min_break,
            work_start=window_start,
        )
        if candidate is None:
            outcome.reason = "no available slots"
            return outcome

        try:
            if receiving is source:
                source.reschedule(block.id, candidate.start, candidate.end)
            else:
                replacement = receiving.add_block(
                    block.block_type,
                    block.title,
                    candidate.start,
                    candidate.end,
                    reference_id=block.reference_id,
                )
                source.remove_block(block.id)
                outcome.new_block_id = replacement.id
        except InvariantViolation as e:
            outcome.outcome = AttemptOutcome.FAILED
            outcome.reason = str(e)
            return outcome

        outcome.outcome = AttemptOutcome.PLACED
        outcome.new_start = candidate.start
        outcome.new_end = candidate.end
        return outcome

    def _record(
        self,
        schedule: Schedule,
        block_id: str,
        old_start: datetime,
        old_end: datetime,
        outcome: RescheduleOutcome,
    ):
        if self.attempt_log is None:
            return
        attempt = RescheduleAttempt(
            id=uuid.uuid4().hex,
            user_id=schedule.user_id,
            schedule_id=schedule.id,
            block_id=block_id,
            schedule_date=schedule.date,
            attempted_at=self._clock(),
            outcome=outcome.outcome,
            old_start=old_start,
            old_end=old_end,
            new_start=outcome.new_start,
            new_end=outcome.new_end,
            failure_reason=outcome.reason or None,
        )
        self.attempt_log.append_attempt(attempt)
