# timeblock: external calendar integrations

from .calendar_events import (
    CalendarEvent,
    block_to_google_event,
    block_to_microsoft_event,
    parse_provider_event,
)
from .calendar_writer import CalendarWriter, CalendarWriteResult

__all__ = [
    "CalendarEvent",
    "CalendarWriter",
    "CalendarWriteResult",
    "block_to_google_event",
    "block_to_microsoft_event",
    "parse_provider_event",
]
