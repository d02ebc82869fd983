"""
Tests for missed-block detection and repair.
"""

from datetime import timedelta

from conftest import DAY, at

from timeblock.time_truth.block_manager import Schedule
from timeblock.time_truth.rollover import AttemptOutcome, RescheduleEngine

NEXT_DAY = DAY + timedelta(days=1)


class AttemptLog(list):
    """In-memory attempt log."""

    def append_attempt(self, attempt):
        self.append(attempt)


def _day_with_missed_block():
    """A 09-10 (missed by noon), B 10-11 completed, C 14-15 upcoming."""
    schedule = Schedule(user_id="u1", date=DAY)
    a = schedule.add_block("task", "A", at(9), at(10))
    b = schedule.add_block("task", "B", at(10), at(11))
    c = schedule.add_block("meeting", "C", at(14), at(15))
    schedule.mark_completed(b.id)
    return schedule, a, b, c


class TestDetectMissed:
    def test_past_due_blocks_marked(self):
        schedule, a, b, c = _day_with_missed_block()
        missed = RescheduleEngine().detect_missed(schedule, at(12))

        assert [blk.id for blk in missed] == [a.id]
        assert a.missed
        assert not c.missed

    def test_completed_never_selected(self):
        schedule, a, b, c = _day_with_missed_block()
        missed = RescheduleEngine().detect_missed(schedule, at(23))

        assert b.id not in [blk.id for blk in missed]
        assert b.completed and not b.missed

    def test_nothing_missed_before_end(self):
        schedule, a, b, c = _day_with_missed_block()
        assert RescheduleEngine().detect_missed(schedule, at(9, 30)) == []


class TestPreview:
    def test_preview_does_not_mutate(self):
        schedule, a, b, c = _day_with_missed_block()
        preview = RescheduleEngine().preview(schedule, at(12))

        assert preview["blocks_to_reschedule"] == 1
        assert preview["blocks"][0]["id"] == a.id
        assert preview["blocks"][0]["duration_min"] == 60
        assert not a.missed


class TestAutoReschedule:
    """Repair moves missed blocks into the rest of the window."""

    def test_moved_to_first_free_time_after_now(self):
        schedule, a, b, c = _day_with_missed_block()
        log = AttemptLog()
        engine = RescheduleEngine(attempt_log=log)

        outcomes = engine.auto_reschedule(schedule, at(9), at(17), now=at(12))

        assert len(outcomes) == 1
        assert outcomes[0].placed
        assert (a.start_time, a.end_time) == (at(12), at(13))
        assert not a.missed
        assert schedule.get_conflicts() == []

        assert len(log) == 1
        attempt = log[0]
        assert attempt.outcome is AttemptOutcome.PLACED
        assert (attempt.old_start, attempt.old_end) == (at(9), at(10))
        assert (attempt.new_start, attempt.new_end) == (at(12), at(13))
        assert attempt.failure_reason is None

    def test_after_skips_too_small_gap(self):
        """From 13:30 the gap before C is 30m, so the block lands after C."""
        schedule, a, b, c = _day_with_missed_block()
        outcomes = RescheduleEngine().auto_reschedule(
            schedule, at(9), at(17), now=at(12), after=at(13, 30)
        )

        assert outcomes[0].new_start == at(15)
        assert a.start_time == at(15)

    def test_no_slot_left(self):
        schedule, a, b, c = _day_with_missed_block()
        log = AttemptLog()

        outcomes = RescheduleEngine(attempt_log=log).auto_reschedule(
            schedule, at(9), at(12, 30), now=at(12)
        )

        assert outcomes[0].outcome is AttemptOutcome.NO_SLOT
        assert outcomes[0].reason == "no available slots"
        assert a.missed
        assert a.start_time == at(9)
        assert log[0].outcome is AttemptOutcome.NO_SLOT
        assert log[0].new_start is None

    def test_window_already_over(self):
        schedule, a, b, c = _day_with_missed_block()
        outcomes = RescheduleEngine().auto_reschedule(schedule, at(9), at(17), now=at(18))

        # C is missed by now too
        assert {o.block_id for o in outcomes} == {a.id, c.id}
        assert all(o.reason == "no time left in window" for o in outcomes)

    def test_chronological_order(self):
        schedule = Schedule(user_id="u1", date=DAY)
        late = schedule.add_block("task", "Late", at(10, 30), at(11))
        early = schedule.add_block("task", "Early", at(9), at(10))

        outcomes = RescheduleEngine().auto_reschedule(schedule, at(9), at(17), now=at(12))

        assert [o.block_id for o in outcomes] == [early.id, late.id]
        assert early.start_time == at(12)
        assert late.start_time == at(13)

    def test_min_break_after_now(self):
        schedule, a, b, c = _day_with_missed_block()
        engine = RescheduleEngine(min_break=timedelta(minutes=15))

        engine.auto_reschedule(schedule, at(9), at(17), now=at(12))

        assert a.start_time == at(12, 15)

    def test_min_break_after_busy_block(self):
        schedule = Schedule(user_id="u1", date=DAY)
        a = schedule.add_block("task", "A", at(9), at(10))
        schedule.add_block("meeting", "D", at(12), at(13))
        engine = RescheduleEngine(min_break=timedelta(minutes=15))

        engine.auto_reschedule(schedule, at(9), at(17), now=at(11, 50))

        assert a.start_time == at(13, 15)

    def test_nothing_to_do(self):
        schedule = Schedule(user_id="u1", date=DAY)
        schedule.add_block("task", "Later", at(15), at(16))
        log = AttemptLog()
        assert RescheduleEngine(attempt_log=log).auto_reschedule(
            schedule, at(9), at(17), now=at(12)
        ) == []
        assert log == []

    def test_move_to_another_day(self):
        schedule, a, b, c = _day_with_missed_block()
        target = Schedule(user_id="u1", date=NEXT_DAY)
        log = AttemptLog()

        outcomes = RescheduleEngine(attempt_log=log).auto_reschedule(
            schedule,
            at(9, day=NEXT_DAY),
            at(17, day=NEXT_DAY),
            now=at(20),
            target=target,
        )

        assert outcomes[0].placed
        assert outcomes[0].new_start == at(9, day=NEXT_DAY)
        assert a.id not in [blk.id for blk in schedule.blocks]
        replacement = target.find_block(outcomes[0].new_block_id)
        assert replacement.title == "A"
        assert replacement.schedule_id == target.id
        assert log[0].block_id == a.id
        assert log[0].schedule_id == schedule.id
