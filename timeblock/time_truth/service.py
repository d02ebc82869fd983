"""
Time Truth service - the operations exposed to callers.

Wires the block model, slot finder, auto-scheduler, reschedule engine and
calendar reconciler to one schedule store. Every mutating call for a
(user, date) runs under that key's lock; reads never take it.
"""

import logging
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta

from timeblock.config import Settings, get_settings
from timeblock.errors import ConfigurationError
from timeblock.integrations.calendar_events import CalendarEvent
from timeblock.observability import RequestContext
from timeblock.priority import PriorityScorer, PriorityWeights
from timeblock.time_truth.block_manager import BlockManager, BlockType, Schedule, TimeBlock, TimeSlot
from timeblock.time_truth.calendar_sync import CalendarSync, SyncResult
from timeblock.time_truth.rollover import RescheduleAttempt, RescheduleEngine, RescheduleOutcome
from timeblock.time_truth.scheduler import AutoScheduler, AutoScheduleResult, SchedulableItem
from timeblock.time_truth.slots import day_window, find_available_slots

logger = logging.getLogger(__name__)


@dataclass
class _KeyLock:
    """Lock for one (user, date) plus the number of callers holding or awaiting it."""

    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class TimeTruth:
    """
    Facade over the scheduling engine for one schedule store.

    Usage:
        tt = TimeTruth(ScheduleStore(db_path))
        tt.add_block("u1", day, "task", "Write report", start, end)
        result = tt.auto_schedule("u1", day, items)
    """

    def __init__(
        self,
        store=None,
        reconciler: CalendarSync | None = None,
        scorer: PriorityScorer | None = None,
        settings: Settings | None = None,
        clock=None,
    ):
        if store is None:
            from timeblock.state_store import ScheduleStore

            store = ScheduleStore()

        self.store = store
        self.settings = settings or get_settings()
        self.reconciler = reconciler
        self._clock = clock or (lambda: datetime.now(UTC))

        self.blocks = BlockManager(store)
        self.scheduler = AutoScheduler(
            scorer=scorer or PriorityScorer(PriorityWeights(*self.settings.priority_weights)),
            min_break=self.settings.min_break,
        )
        self.rollover = RescheduleEngine(
            attempt_log=store, min_break=self.settings.min_break, clock=self._clock
        )

        self._locks: dict[tuple[str, date], _KeyLock] = {}
        self._locks_guard = threading.Lock()

    # ==================== Locking ====================

    @contextmanager
    def _locked(self, user_id: str, *days: date) -> Iterator[None]:
        """
        Hold the locks of the given days for one user.

        An entry lives in _locks only while some caller holds or waits on it.
        """
        # Fixed order so two-day operations cannot deadlock
        keys = [(user_id, d) for d in sorted(set(days))]
        with self._locks_guard:
            entries = [self._locks.setdefault(key, _KeyLock()) for key in keys]
            for entry in entries:
                entry.holders += 1

        try:
            for entry in entries:
                entry.lock.acquire()
            try:
                yield
            finally:
                for entry in reversed(entries):
                    entry.lock.release()
        finally:
            with self._locks_guard:
                for key, entry in zip(keys, entries):
                    entry.holders -= 1
                    if entry.holders == 0:
                        del self._locks[key]

    # ==================== Reads ====================

    def window(self, day: date) -> tuple[datetime, datetime]:
        """Configured working window of a day, in UTC."""
        return day_window(day, self.settings.work_start, self.settings.work_end, self.settings.tz)

    def get_schedule(self, user_id: str, day: date, now: datetime | None = None) -> Schedule:
        """
        Schedule for the day with missed blocks classified.

        Classification is not persisted; auto_reschedule does that.
        """
        schedule = self.blocks.get_schedule(user_id, day)
        self.rollover.detect_missed(schedule, now or self._clock())
        return schedule

    def find_available_slots(
        self,
        user_id: str,
        day: date,
        min_duration: timedelta = timedelta(0),
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[TimeSlot]:
        """Free slots in the working window (or an explicit [start, end))."""
        window_start, window_end = self.window(day)
        schedule = self.blocks.get_schedule(user_id, day)
        return find_available_slots(
            schedule.blocks, start or window_start, end or window_end, min_duration
        )

    def list_reschedule_attempts(self, user_id: str, day: date) -> list[RescheduleAttempt]:
        return self.store.list_attempts(user_id, day)

    # ==================== Block mutations ====================

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
        with self._locked(user_id, day):
            return self.blocks.add_block(user_id, day, block_type, title, start, end, reference_id)

    def remove_block(self, user_id: str, day: date, block_id: str) -> TimeBlock:
        with self._locked(user_id, day):
            return self.blocks.remove_block(user_id, day, block_id)

    def complete_block(self, user_id: str, day: date, block_id: str) -> TimeBlock:
        with self._locked(user_id, day):
            return self.blocks.complete_block(user_id, day, block_id)

    def reschedule_block(
        self, user_id: str, day: date, block_id: str, new_start: datetime, new_end: datetime
    ) -> TimeBlock:
        with self._locked(user_id, day):
            return self.blocks.reschedule_block(user_id, day, block_id, new_start, new_end)

    # ==================== Scheduling ====================

    def auto_schedule(
        self,
        user_id: str,
        day: date,
        items: Sequence[SchedulableItem],
        now: datetime | None = None,
    ) -> AutoScheduleResult:
        """
        Rank items and place them into the day's free working time.

        Items that do not fit are reported as failed in the result.
        """
        now = now or self._clock()
        with RequestContext(), self._locked(user_id, day):
            schedule = self.blocks.get_schedule(user_id, day)
            window = self.window(day)
            slots = find_available_slots(schedule.blocks, *window)
            ranked = self.scheduler.rank_items(items, now)
            result = self.scheduler.schedule(schedule, ranked, slots, window=window)
            if result.scheduled_count:
                self.store.save(schedule)
            return result

    def auto_reschedule(
        self,
        user_id: str,
        day: date,
        after: datetime | None = None,
        now: datetime | None = None,
        target_date: date | None = None,
    ) -> list[RescheduleOutcome]:
        """
        Move the day's missed blocks into free time.

        Args:
            user_id: Schedule owner
            day: Day holding the missed blocks
            after: Earliest placement (defaults to now)
            now: Current instant
            target_date: Place into this day's working window instead

        Returns:
            One outcome per missed block, also recorded as attempts
        """
        now = now or self._clock()
        receiving_day = target_date or day

        with RequestContext(), self._locked(user_id, day, receiving_day):
            schedule = self.store.load(user_id, day)
            if schedule is None:
                return []

            target = None
            if receiving_day != day:
                target = self.blocks.get_schedule(user_id, receiving_day)

            window_start, window_end = self.window(receiving_day)
            outcomes = self.rollover.auto_reschedule(
                schedule, window_start, window_end, now=now, after=after, target=target
            )

            self.store.save(schedule)
            if target is not None:
                self.store.save(target)
                for outcome in outcomes:
                    if outcome.placed:
                        self.store.delete_links(user_id, block_id=outcome.block_id)
            return outcomes

    # ==================== Calendar ====================

    def _require_reconciler(self) -> CalendarSync:
        if self.reconciler is None:
            raise ConfigurationError("No calendar reconciler configured")
        return self.reconciler

    def sync(
        self,
        user_id: str,
        day: date,
        delete_missing: bool = False,
        attendees: list[str] | None = None,
        reminders: list[int] | None = None,
    ) -> SyncResult:
        """
        Push the day's blocks to the user's calendar.

        Pruning only touches owned events on that calendar day.
        """
        reconciler = self._require_reconciler()
        schedule = self.blocks.get_schedule(user_id, day)
        tz = self.settings.tz
        day_start = datetime.combine(day, time.min, tzinfo=tz).astimezone(UTC)
        day_end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz).astimezone(UTC)
        with RequestContext():
            return reconciler.sync(
                user_id,
                schedule.blocks,
                delete_missing=delete_missing,
                prune_window=(day_start, day_end),
                attendees=attendees,
                reminders=reminders,
            )

    def list_events(
        self, user_id: str, start: datetime, end: datetime, only_owned: bool = False
    ) -> list[CalendarEvent]:
        return self._require_reconciler().list_events(user_id, start, end, only_owned=only_owned)

    def check_conflicts(self, user_id: str, start: datetime, end: datetime) -> list[CalendarEvent]:
        return self._require_reconciler().check_conflicts(user_id, start, end)
