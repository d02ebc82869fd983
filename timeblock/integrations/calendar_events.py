"""
Calendar events - canonical event record and provider payload adapters.

Provider payloads are loosely typed JSON. Google Calendar v3 and
Microsoft Graph events each get their own payload shape, converted here
into CalendarEvent; provider-specific fields never travel past this module.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

if TYPE_CHECKING:
    from timeblock.time_truth.block_manager import TimeBlock

logger = logging.getLogger(__name__)

# Marks events this system created: a Google private extended property,
# a Microsoft Graph category
OWNER_TAG = "timeblock"


@dataclass
class CalendarEvent:
    id: str
    summary: str
    start_time: datetime
    end_time: datetime
    description: str = ""
    location: str = ""
    status: str = ""
    organizer: str = ""
    attendees: list[str] = field(default_factory=list)
    is_all_day: bool = False
    is_recurring: bool = False
    is_owned: bool = False

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start_time < end and self.end_time > start

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "summary": self.summary,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "description": self.description,
            "location": self.location,
            "status": self.status,
            "organizer": self.organizer,
            "attendees": list(self.attendees),
            "is_all_day": self.is_all_day,
            "is_recurring": self.is_recurring,
            "is_owned": self.is_owned,
        }


def _parse_event_time(raw: dict) -> tuple[datetime | None, bool]:
    """Returns (instant, is_all_day). Date-only values are midnight UTC."""
    if raw.get("dateTime"):
        value = datetime.fromisoformat(raw["dateTime"].replace("Z", "+00:00"))
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value, False
    if raw.get("date"):
        return datetime.combine(date.fromisoformat(raw["date"]), time.min, tzinfo=UTC), True
    return None, False


@dataclass
class GoogleEventPayload:
    """Google Calendar v3 event resource, reduced to the fields we read."""

    id: str
    summary: str = ""
    description: str = ""
    location: str = ""
    status: str = ""
    recurring_event_id: str = ""
    organizer_email: str = ""
    attendee_emails: list[str] = field(default_factory=list)
    private_properties: dict = field(default_factory=dict)
    start: dict = field(default_factory=dict)
    end: dict = field(default_factory=dict)

    @classmethod
    def from_api(cls, item: dict) -> "GoogleEventPayload":
        return cls(
            id=item.get("id", ""),
            summary=item.get("summary", ""),
            description=item.get("description", ""),
            location=item.get("location", ""),
            status=item.get("status", ""),
            recurring_event_id=item.get("recurringEventId", ""),
            organizer_email=(item.get("organizer") or {}).get("email", ""),
            attendee_emails=[a.get("email", "") for a in item.get("attendees") or []],
            private_properties=(item.get("extendedProperties") or {}).get("private") or {},
            start=item.get("start") or {},
            end=item.get("end") or {},
        )

    def to_calendar_event(self) -> CalendarEvent | None:
        """
        Convert to the canonical record.

        Returns None for events without usable start/end (skipped on import).
        """
        try:
            start, start_all_day = _parse_event_time(self.start)
            end, end_all_day = _parse_event_time(self.end)
        except ValueError:
            logger.debug("Skipping event %s with unparseable times", self.id)
            return None
        if start is None or end is None or start_all_day != end_all_day:
            return None

        return CalendarEvent(
            id=self.id,
            summary=self.summary,
            start_time=start,
            end_time=end,
            description=self.description,
            location=self.location,
            status=self.status,
            organizer=self.organizer_email,
            attendees=[e for e in self.attendee_emails if e],
            is_all_day=start_all_day,
            is_recurring=bool(self.recurring_event_id),
            is_owned=OWNER_TAG in self.private_properties,
        )


def map_microsoft_status(show_as: str) -> str:
    """Graph free/busy value to a canonical event status."""
    if show_as in ("free", "tentative"):
        return show_as
    # busy, oof, workingElsewhere and unknown values all block time
    return "confirmed"


def _parse_graph_time(raw: dict, all_day: bool) -> datetime | None:
    """
    Graph dateTimeTimeZone to an instant.

    Graph sends seven fractional digits and a separate zone name; all-day
    values are midnight UTC of their date.
    """
    value = raw.get("dateTime") or ""
    if not value:
        return None
    if all_day:
        return datetime.combine(date.fromisoformat(value[:10]), time.min, tzinfo=UTC)

    whole, _, fraction = value.partition(".")
    parsed = datetime.fromisoformat(f"{whole}.{fraction[:6]}" if fraction else whole)
    zone_name = raw.get("timeZone") or "UTC"
    zone = UTC if zone_name == "UTC" else ZoneInfo(zone_name)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=zone)
    return parsed


@dataclass
class MicrosoftEventPayload:
    """Microsoft Graph event resource, reduced to the fields we read."""

    id: str
    subject: str = ""
    body: str = ""
    location: str = ""
    show_as: str = ""
    is_cancelled: bool = False
    is_all_day: bool = False
    has_recurrence: bool = False
    organizer_email: str = ""
    attendee_emails: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    start: dict = field(default_factory=dict)
    end: dict = field(default_factory=dict)

    @classmethod
    def from_api(cls, item: dict) -> "MicrosoftEventPayload":
        organizer = (item.get("organizer") or {}).get("emailAddress") or {}
        return cls(
            id=item.get("id", ""),
            subject=item.get("subject", ""),
            body=(item.get("body") or {}).get("content", ""),
            location=(item.get("location") or {}).get("displayName", ""),
            show_as=item.get("showAs", ""),
            is_cancelled=bool(item.get("isCancelled")),
            is_all_day=bool(item.get("isAllDay")),
            has_recurrence=item.get("recurrence") is not None,
            organizer_email=organizer.get("address", ""),
            attendee_emails=[
                (a.get("emailAddress") or {}).get("address", "")
                for a in item.get("attendees") or []
            ],
            categories=list(item.get("categories") or []),
            start=item.get("start") or {},
            end=item.get("end") or {},
        )

    def to_calendar_event(self) -> CalendarEvent | None:
        try:
            start = _parse_graph_time(self.start, self.is_all_day)
            end = _parse_graph_time(self.end, self.is_all_day)
        except (ValueError, ZoneInfoNotFoundError):
            logger.debug("Skipping event %s with unparseable times", self.id)
            return None
        if start is None or end is None:
            return None

        return CalendarEvent(
            id=self.id,
            summary=self.subject,
            start_time=start,
            end_time=end,
            description=self.body,
            location=self.location,
            status="cancelled" if self.is_cancelled else map_microsoft_status(self.show_as),
            organizer=self.organizer_email,
            attendees=[e for e in self.attendee_emails if e],
            is_all_day=self.is_all_day,
            is_recurring=self.has_recurrence,
            is_owned=OWNER_TAG in self.categories,
        )


PROVIDER_PAYLOADS = {
    "google": GoogleEventPayload,
    "microsoft": MicrosoftEventPayload,
}


def parse_provider_event(provider: str, item: dict) -> CalendarEvent | None:
    """Convert one raw provider event into a CalendarEvent (None if unusable)."""
    payload_cls = PROVIDER_PAYLOADS.get(provider)
    if payload_cls is None:
        raise ValueError(f"Unknown calendar provider: {provider}")
    return payload_cls.from_api(item).to_calendar_event()


def event_id_for_block_id(block_id: str) -> str:
    """
    Remote event id derived from a block's stable id.

    Block ids are uuid4 hex, which Google accepts as an event id (base32hex
    characters, 5-1024 long), so the same block always maps to the same event.
    """
    return block_id.replace("-", "").lower()


def event_id_for_block(block: "TimeBlock") -> str:
    return event_id_for_block_id(block.id)


def block_to_google_event(
    block: "TimeBlock",
    attendees: list[str] | None = None,
    reminders: list[int] | None = None,
) -> dict:
    """
    Build the Google event body pushed for a block.
    """
    description = f"Type: {block.block_type.value}"
    if block.completed:
        description += "\nStatus: Completed"
    elif block.missed:
        description += "\nStatus: Missed"

    event = {
        "id": event_id_for_block(block),
        "summary": block.title,
        "description": description,
        "start": {"dateTime": block.start_time.isoformat()},
        "end": {"dateTime": block.end_time.isoformat()},
        "extendedProperties": {"private": {OWNER_TAG: "1"}},
    }

    emails = [email for email in attendees or [] if email]
    if emails:
        event["attendees"] = [{"email": email} for email in emails]

    overrides = [{"method": "popup", "minutes": m} for m in reminders or [] if m > 0]
    if overrides:
        event["reminders"] = {"useDefault": False, "overrides": overrides}

    return event


def block_id_from_subject(subject: str) -> str | None:
    """Block id from a Graph subject of the form "[block-id] Title"."""
    if not subject.startswith("["):
        return None
    block_id, closed, _ = subject[1:].partition("]")
    return block_id if closed and block_id else None


def block_to_microsoft_event(block: "TimeBlock") -> dict:
    """
    Build the Microsoft Graph event body for a block.

    Graph assigns its own event ids, so the block id travels in the subject
    and ownership in the categories.
    """
    description = f"Type: {block.block_type.value}"
    if block.completed:
        description += "\nStatus: Completed"
    elif block.missed:
        description += "\nStatus: Missed"

    return {
        "subject": f"[{block.id}] {block.title}",
        "body": {"contentType": "text", "content": description},
        "start": {
            "dateTime": block.start_time.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S"),
            "timeZone": "UTC",
        },
        "end": {
            "dateTime": block.end_time.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S"),
            "timeZone": "UTC",
        },
        "categories": [OWNER_TAG],
        "showAs": "busy",
    }
