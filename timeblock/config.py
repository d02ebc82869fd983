"""
Centralized configuration for timeblock.

All values that vary by deployment belong here.
Override via environment variables where marked.
"""

import os
from dataclasses import dataclass, field
from datetime import time, timedelta
from zoneinfo import ZoneInfo

from timeblock.errors import ConfigurationError

# ============================================================
# Working window
# ============================================================

WORK_START: str = os.environ.get("TIMEBLOCK_WORK_START", "09:00")
"""Start of the working window used when no explicit window is given."""

WORK_END: str = os.environ.get("TIMEBLOCK_WORK_END", "17:00")
"""End of the working window."""

TIMEZONE: str = os.environ.get("TIMEBLOCK_TIMEZONE", "UTC")
"""IANA zone the working window is expressed in."""

MIN_BREAK_MIN: int = int(os.environ.get("TIMEBLOCK_MIN_BREAK_MIN", "0"))
"""Gap left after each auto-placed block, in minutes."""

# ============================================================
# Priority scoring
# ============================================================

PRIORITY_WEIGHTS: str = os.environ.get("TIMEBLOCK_PRIORITY_WEIGHTS", "2.0,3.0,1.5,1.0,0.8")
"""priority,due,effort,streak_risk,meeting_cadence weights, comma separated."""

# ============================================================
# Calendar
# ============================================================

CALENDAR_ID: str = os.environ.get("TIMEBLOCK_CALENDAR_ID", "primary")
"""Remote calendar blocks are pushed to."""

CALENDAR_TIMEOUT: float = float(os.environ.get("TIMEBLOCK_CALENDAR_TIMEOUT", "15"))
"""Per-request timeout for calendar API calls, in seconds."""

TOKEN_EXPIRY_WARN_HOURS: int = int(os.environ.get("TIMEBLOCK_TOKEN_EXPIRY_WARN_HOURS", "24"))
"""Warn when the OAuth token expires within this many hours."""

# ============================================================
# Logging
# ============================================================

LOG_LEVEL: str = os.environ.get("TIMEBLOCK_LOG_LEVEL", "INFO")


def parse_clock(value: str) -> time:
    """Parse an HH:MM string."""
    try:
        hours, minutes = value.split(":")
        return time(int(hours), int(minutes))
    except ValueError as e:
        raise ConfigurationError(f"Invalid clock time {value!r} (use HH:MM)") from e


def parse_weights(value: str) -> tuple[float, ...]:
    parts = [p.strip() for p in value.split(",") if p.strip()]
    if len(parts) != 5:
        raise ConfigurationError(f"Expected 5 priority weights, got {len(parts)}: {value!r}")
    try:
        return tuple(float(p) for p in parts)
    except ValueError as e:
        raise ConfigurationError(f"Invalid priority weights {value!r}") from e


@dataclass(frozen=True)
class Settings:
    """Resolved settings handed to the engine components."""

    work_start: time = field(default_factory=lambda: parse_clock(WORK_START))
    work_end: time = field(default_factory=lambda: parse_clock(WORK_END))
    timezone: str = TIMEZONE
    min_break: timedelta = field(default_factory=lambda: timedelta(minutes=MIN_BREAK_MIN))
    priority_weights: tuple[float, ...] = field(
        default_factory=lambda: parse_weights(PRIORITY_WEIGHTS)
    )
    calendar_id: str = CALENDAR_ID
    calendar_timeout: float = CALENDAR_TIMEOUT
    token_expiry_warn: timedelta = field(
        default_factory=lambda: timedelta(hours=TOKEN_EXPIRY_WARN_HOURS)
    )

    def __post_init__(self):
        if self.work_end <= self.work_start:
            raise ConfigurationError(
                f"Work end {self.work_end} must be after work start {self.work_start}"
            )

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def get_settings() -> Settings:
    """Settings built from the current environment defaults."""
    return Settings()
