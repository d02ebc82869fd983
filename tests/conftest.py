"""
Test configuration: repo root on sys.path plus DB isolation.

Every test runs with TIMEBLOCK_HOME pointed at its own tmp directory, so a
store built without an explicit path never touches the real database.
"""

import sys
from datetime import UTC, date, datetime
from pathlib import Path

import pytest

# Add repo root to sys.path so tests can import timeblock.*
REPO_ROOT = Path(__file__).parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from timeblock.state_store import ScheduleStore  # noqa: E402

DAY = date(2026, 3, 2)


def at(hour: int, minute: int = 0, day: date = DAY) -> datetime:
    """UTC instant on the test day."""
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=UTC)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep the default DB path inside the test's tmp directory."""
    home = tmp_path / "timeblock-home"
    monkeypatch.setenv("TIMEBLOCK_HOME", str(home))
    monkeypatch.delenv("TIMEBLOCK_DB", raising=False)
    return home


@pytest.fixture
def store(tmp_path):
    """Fresh schedule store on a tmp database."""
    return ScheduleStore(tmp_path / "test.db")
