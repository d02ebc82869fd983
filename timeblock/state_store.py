"""
State Store - durable home of schedules, blocks, reschedule attempts and
external event links.

SQLite for persistence. One explicit store object per database, passed to
the components that need it.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime
from pathlib import Path

from timeblock import db as db_module
from timeblock.time_truth.block_manager import BlockType, Schedule, TimeBlock
from timeblock.time_truth.rollover import AttemptOutcome, RescheduleAttempt

logger = logging.getLogger(__name__)


@dataclass
class ExternalEventLink:
    """Maps a local block to its remote event on one calendar."""

    user_id: str
    provider: str
    calendar_id: str
    block_id: str
    remote_event_id: str
    synced_at: datetime


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class ScheduleStore:
    """
    Schedule repository and reschedule attempt log.

    Durable and consistent for a single (user, date) key. Callers serialize
    writes to the same key.
    """

    def __init__(self, db_path: str | Path | None = None):
        self.db_path = str(db_path or db_module.get_db_path())
        db_module.ensure_schema(self.db_path)
        logger.info("ScheduleStore ready, DB path: %s", self.db_path)

    def _conn(self):
        return db_module.get_connection(self.db_path)

    # ==================== Schedules ====================

    def load(self, user_id: str, day: date) -> Schedule | None:
        """Load the schedule for (user, date) with its blocks, or None."""
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM schedules WHERE user_id = ? AND date = ?",
                [user_id, day.isoformat()],
            ).fetchone()
            if row is None:
                return None
            block_rows = conn.execute(
                "SELECT * FROM time_blocks WHERE schedule_id = ? ORDER BY start_time",
                [row["id"]],
            ).fetchall()

        return Schedule(
            id=row["id"],
            user_id=row["user_id"],
            date=date.fromisoformat(row["date"]),
            blocks=[self._row_to_block(dict(b)) for b in block_rows],
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"]),
        )

    def save(self, schedule: Schedule) -> None:
        """
        Persist a schedule and replace its block set.

        A schedule without blocks is deleted instead.
        """
        with self._conn() as conn:
            if schedule.is_empty:
                conn.execute("DELETE FROM schedules WHERE id = ?", [schedule.id])
                return

            conn.execute(
                """
                INSERT INTO schedules (id, user_id, date, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET updated_at = excluded.updated_at
                """,
                [
                    schedule.id,
                    schedule.user_id,
                    schedule.date.isoformat(),
                    _iso(schedule.created_at),
                    _iso(schedule.updated_at),
                ],
            )

            keep = [b.id for b in schedule.blocks]
            placeholders = ",".join("?" for _ in keep)
            conn.execute(
                f"DELETE FROM time_blocks WHERE schedule_id = ? AND id NOT IN ({placeholders})",  # noqa: S608
                [schedule.id, *keep],
            )

            for block in schedule.blocks:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO time_blocks
                        (id, schedule_id, block_type, reference_id, title, start_time,
                         end_time, completed, missed, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        block.id,
                        schedule.id,
                        block.block_type.value,
                        block.reference_id,
                        block.title,
                        _iso(block.start_time),
                        _iso(block.end_time),
                        1 if block.completed else 0,
                        1 if block.missed else 0,
                        _iso(block.created_at),
                        _iso(block.updated_at),
                    ],
                )

    def find_schedules(self, user_id: str, start_date: date, end_date: date) -> list[Schedule]:
        """All stored schedules for a user with start_date <= date <= end_date."""
        with self._conn() as conn:
            rows = conn.execute(
                """
                SELECT date FROM schedules
                WHERE user_id = ? AND date >= ? AND date <= ?
                ORDER BY date
                """,
                [user_id, start_date.isoformat(), end_date.isoformat()],
            ).fetchall()
        days = [date.fromisoformat(r["date"]) for r in rows]
        return [s for s in (self.load(user_id, d) for d in days) if s is not None]

    # ==================== Reschedule attempts ====================

    def append_attempt(self, attempt: RescheduleAttempt) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO reschedule_attempts
                    (id, user_id, schedule_id, block_id, schedule_date, attempted_at,
                     outcome, old_start, old_end, new_start, new_end, failure_reason)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    attempt.id,
                    attempt.user_id,
                    attempt.schedule_id,
                    attempt.block_id,
                    attempt.schedule_date.isoformat(),
                    _iso(attempt.attempted_at),
                    attempt.outcome.value,
                    _iso(attempt.old_start),
                    _iso(attempt.old_end),
                    _iso(attempt.new_start),
                    _iso(attempt.new_end),
                    attempt.failure_reason,
                ],
            )

    def list_attempts(self, user_id: str, day: date) -> list[RescheduleAttempt]:
        with self._conn() as conn:
            rows = conn.execute(
                """
                SELECT * FROM reschedule_attempts
                WHERE user_id = ? AND schedule_date = ?
                ORDER BY attempted_at, block_id
                """,
                [user_id, day.isoformat()],
            ).fetchall()
        return [
            RescheduleAttempt(
                id=r["id"],
                user_id=r["user_id"],
                schedule_id=r["schedule_id"],
                block_id=r["block_id"],
                schedule_date=date.fromisoformat(r["schedule_date"]),
                attempted_at=_dt(r["attempted_at"]),
                outcome=AttemptOutcome(r["outcome"]),
                old_start=_dt(r["old_start"]),
                old_end=_dt(r["old_end"]),
                new_start=_dt(r["new_start"]),
                new_end=_dt(r["new_end"]),
                failure_reason=r["failure_reason"],
            )
            for r in rows
        ]

    # ==================== External event links ====================

    def upsert_link(
        self,
        user_id: str,
        provider: str,
        calendar_id: str,
        block_id: str,
        remote_event_id: str,
    ) -> ExternalEventLink:
        link = ExternalEventLink(
            user_id=user_id,
            provider=provider,
            calendar_id=calendar_id,
            block_id=block_id,
            remote_event_id=remote_event_id,
            synced_at=datetime.now(UTC),
        )
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO external_event_links
                    (user_id, provider, calendar_id, block_id, remote_event_id, synced_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, provider, calendar_id, block_id) DO UPDATE SET
                    remote_event_id = excluded.remote_event_id,
                    synced_at = excluded.synced_at
                """,
                [
                    link.user_id,
                    link.provider,
                    link.calendar_id,
                    link.block_id,
                    link.remote_event_id,
                    _iso(link.synced_at),
                ],
            )
        return link

    def get_link(
        self, user_id: str, provider: str, calendar_id: str, block_id: str
    ) -> ExternalEventLink | None:
        with self._conn() as conn:
            row = conn.execute(
                """
                SELECT * FROM external_event_links
                WHERE user_id = ? AND provider = ? AND calendar_id = ? AND block_id = ?
                """,
                [user_id, provider, calendar_id, block_id],
            ).fetchone()
        if row is None:
            return None
        return ExternalEventLink(
            user_id=row["user_id"],
            provider=row["provider"],
            calendar_id=row["calendar_id"],
            block_id=row["block_id"],
            remote_event_id=row["remote_event_id"],
            synced_at=_dt(row["synced_at"]),
        )

    def delete_links(
        self,
        user_id: str,
        block_id: str | None = None,
        provider: str | None = None,
        calendar_id: str | None = None,
    ) -> int:
        """
        Delete links for a block, a calendar, or both. Returns rows deleted.
        """
        where = ["user_id = ?"]
        params = [user_id]
        if block_id is not None:
            where.append("block_id = ?")
            params.append(block_id)
        if provider is not None:
            where.append("provider = ?")
            params.append(provider)
        if calendar_id is not None:
            where.append("calendar_id = ?")
            params.append(calendar_id)

        with self._conn() as conn:
            result = conn.execute(
                f"DELETE FROM external_event_links WHERE {' AND '.join(where)}",  # noqa: S608
                params,
            )
            return result.rowcount

    # ==================== Helpers ====================

    def _row_to_block(self, row: dict) -> TimeBlock:
        """Convert database row to TimeBlock object."""
        return TimeBlock(
            id=row["id"],
            schedule_id=row["schedule_id"],
            block_type=BlockType(row["block_type"]),
            title=row["title"],
            start_time=_dt(row["start_time"]),
            end_time=_dt(row["end_time"]),
            reference_id=row.get("reference_id"),
            completed=bool(row.get("completed", 0)),
            missed=bool(row.get("missed", 0)),
            created_at=_dt(row.get("created_at")),
            updated_at=_dt(row.get("updated_at")),
        )
