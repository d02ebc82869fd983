"""
Exception taxonomy for timeblock.

Invariant violations and not-found errors propagate to the caller.
Calendar failures are caught per item inside batches and counted.
Running out of free time is an outcome, never an exception.
"""


class TimeBlockError(Exception):
    """Base class for all timeblock errors."""


class InvariantViolation(TimeBlockError):
    """Raised when a schedule invariant would be broken."""


class InvalidIntervalError(InvariantViolation):
    """Raised for an interval with end <= start or a naive datetime."""


class OverlapError(InvariantViolation):
    """Raised when a block would overlap an existing block."""

    def __init__(self, message: str, conflicting_block_id: str | None = None):
        super().__init__(message)
        self.conflicting_block_id = conflicting_block_id


class NotFoundError(TimeBlockError):
    """Raised when a referenced entity does not exist."""


class ScheduleNotFoundError(NotFoundError):
    pass


class BlockNotFoundError(NotFoundError):
    def __init__(self, block_id: str):
        super().__init__(f"Time block not found: {block_id}")
        self.block_id = block_id


class CalendarSyncError(TimeBlockError):
    """Raised when a single call to the calendar provider fails."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class ConfigurationError(TimeBlockError):
    """Raised for missing or malformed configuration."""
