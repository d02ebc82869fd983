"""
Time Truth Module

The scheduling core: every piece of planned work is a concrete time block.

Objects:
- Schedule (all blocks of one user on one day)
- TimeBlock (a scheduled interval)
- TimeSlot (free time inside a working window)
- CalendarEvent (external calendar events)

Invariants:
- Blocks of one schedule never overlap
- Every block has end > start
- Completed blocks are never selected as missed
- Pushing the same block twice updates one remote event
"""

from .block_manager import BlockManager, BlockType, Schedule, TimeBlock, TimeSlot
from .calendar_sync import CalendarSync, SyncResult, find_conflicts
from .rollover import AttemptOutcome, RescheduleAttempt, RescheduleEngine, RescheduleOutcome
from .scheduler import AutoScheduler, AutoScheduleResult, SchedulableItem
from .service import TimeTruth
from .slots import day_window, find_available_slots

__all__ = [
    "AttemptOutcome",
    "AutoScheduleResult",
    "AutoScheduler",
    "BlockManager",
    "BlockType",
    "CalendarSync",
    "RescheduleAttempt",
    "RescheduleEngine",
    "RescheduleOutcome",
    "SchedulableItem",
    "Schedule",
    "SyncResult",
    "TimeBlock",
    "TimeSlot",
    "TimeTruth",
    "day_window",
    "find_available_slots",
    "find_conflicts",
]
