"""
Centralized database access for timeblock.

Single place for:
- DB path resolution
- Connection factory
- Schema creation

Datetimes are stored as ISO 8601 strings with their UTC offset.
"""

import logging
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from timeblock import paths

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS schedules (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    date TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (user_id, date)
);

CREATE TABLE IF NOT EXISTS time_blocks (
    id TEXT PRIMARY KEY,
    schedule_id TEXT NOT NULL REFERENCES schedules(id) ON DELETE CASCADE,
    block_type TEXT NOT NULL,
    reference_id TEXT,
    title TEXT NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    completed INTEGER NOT NULL DEFAULT 0,
    missed INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_time_blocks_schedule ON time_blocks(schedule_id, start_time);

-- No FK to time_blocks: the audit trail outlives removed blocks
CREATE TABLE IF NOT EXISTS reschedule_attempts (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    schedule_id TEXT NOT NULL,
    block_id TEXT NOT NULL,
    schedule_date TEXT NOT NULL,
    attempted_at TEXT NOT NULL,
    outcome TEXT NOT NULL,
    old_start TEXT,
    old_end TEXT,
    new_start TEXT,
    new_end TEXT,
    failure_reason TEXT
);
CREATE INDEX IF NOT EXISTS idx_attempts_user_date
    ON reschedule_attempts(user_id, schedule_date, block_id, attempted_at);

CREATE TABLE IF NOT EXISTS external_event_links (
    user_id TEXT NOT NULL,
    provider TEXT NOT NULL,
    calendar_id TEXT NOT NULL,
    block_id TEXT NOT NULL,
    remote_event_id TEXT NOT NULL,
    synced_at TEXT NOT NULL,
    PRIMARY KEY (user_id, provider, calendar_id, block_id)
);
"""


def get_db_path() -> Path:
    """
    Get the canonical DB path.

    Resolution order:
    1. TIMEBLOCK_DB env var (explicit override)
    2. ~/.timeblock/data/timeblock.db (default via paths.db_path())
    """
    return paths.db_path()


@contextmanager
def get_connection(db_path: str | Path) -> Generator[sqlite3.Connection, None, None]:
    """
    Get a database connection with proper setup.

    Commits on clean exit, rolls back on error, always closes.

    Usage:
        with get_connection(path) as conn:
            conn.execute(...)
    """
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def ensure_schema(db_path: str | Path) -> None:
    """Create tables and indexes if they do not exist yet."""
    with get_connection(db_path) as conn:
        conn.executescript(SCHEMA)
    logger.debug("Schema ensured at %s", db_path)
