"""
Tests for provider payload parsing and pushed event bodies.
"""

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest
from conftest import DAY, at

from timeblock.integrations.calendar_events import (
    OWNER_TAG,
    block_id_from_subject,
    block_to_google_event,
    block_to_microsoft_event,
    event_id_for_block,
    map_microsoft_status,
    parse_provider_event,
)
from timeblock.time_truth.block_manager import Schedule


class TestParseGoogleEvent:
    def test_timed_event(self):
        event = parse_provider_event(
            "google",
            {
                "id": "ev1",
                "summary": "Standup",
                "status": "confirmed",
                "organizer": {"email": "lead@example.com"},
                "attendees": [{"email": "a@example.com"}, {}],
                "start": {"dateTime": "2026-03-02T10:00:00Z"},
                "end": {"dateTime": "2026-03-02T10:15:00+00:00"},
            },
        )

        assert event.id == "ev1"
        assert event.start_time == at(10)
        assert event.end_time == at(10, 15)
        assert not event.is_all_day
        assert event.organizer == "lead@example.com"
        assert event.attendees == ["a@example.com"]
        assert not event.is_owned

    def test_all_day_event(self):
        event = parse_provider_event(
            "google",
            {"id": "ev2", "start": {"date": "2026-03-02"}, "end": {"date": "2026-03-03"}},
        )
        assert event.is_all_day
        assert event.start_time == datetime(2026, 3, 2, tzinfo=UTC)

    def test_owned_and_recurring(self):
        event = parse_provider_event(
            "google",
            {
                "id": "ev3",
                "recurringEventId": "series",
                "extendedProperties": {"private": {OWNER_TAG: "1"}},
                "start": {"dateTime": "2026-03-02T10:00:00Z"},
                "end": {"dateTime": "2026-03-02T11:00:00Z"},
            },
        )
        assert event.is_owned
        assert event.is_recurring

    def test_missing_or_bad_times_skipped(self):
        assert parse_provider_event("google", {"id": "x", "start": {}, "end": {}}) is None
        assert (
            parse_provider_event(
                "google",
                {"id": "y", "start": {"dateTime": "not a time"}, "end": {"dateTime": "nope"}},
            )
            is None
        )
        assert (
            parse_provider_event(
                "google",
                {"id": "z", "start": {"date": "2026-03-02"}, "end": {"dateTime": "2026-03-02T10:00:00Z"}},
            )
            is None
        )

    def test_cancelled(self):
        event = parse_provider_event(
            "google",
            {
                "id": "ev4",
                "status": "cancelled",
                "start": {"dateTime": "2026-03-02T10:00:00Z"},
                "end": {"dateTime": "2026-03-02T11:00:00Z"},
            },
        )
        assert event.is_cancelled
        assert event.to_dict()["status"] == "cancelled"

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            parse_provider_event("exchange", {})


class TestBlockToGoogleEvent:
    def _block(self):
        schedule = Schedule(user_id="u1", date=DAY)
        return schedule, schedule.add_block("focus", "Deep work", at(9), at(11))

    def test_body_keyed_by_block_id(self):
        _, block = self._block()
        body = block_to_google_event(block)

        assert body["id"] == event_id_for_block(block) == block.id
        assert body["summary"] == "Deep work"
        assert body["start"] == {"dateTime": at(9).isoformat()}
        assert body["extendedProperties"] == {"private": {OWNER_TAG: "1"}}
        assert body["description"] == "Type: focus"
        assert "attendees" not in body
        assert "reminders" not in body

    def test_status_in_description(self):
        schedule, block = self._block()
        schedule.mark_completed(block.id)
        assert "Status: Completed" in block_to_google_event(block)["description"]

    def test_attendees_and_reminders(self):
        _, block = self._block()
        body = block_to_google_event(block, attendees=["a@example.com", ""], reminders=[10, 0])

        assert body["attendees"] == [{"email": "a@example.com"}]
        assert body["reminders"] == {
            "useDefault": False,
            "overrides": [{"method": "popup", "minutes": 10}],
        }


class TestParseMicrosoftEvent:
    def test_timed_event(self):
        event = parse_provider_event(
            "microsoft",
            {
                "id": "AAMk1",
                "subject": "Planning",
                "body": {"contentType": "text", "content": "Agenda"},
                "location": {"displayName": "Room 4"},
                "showAs": "busy",
                "organizer": {"emailAddress": {"address": "lead@example.com"}},
                "attendees": [{"emailAddress": {"address": "a@example.com"}}, {}],
                "start": {"dateTime": "2026-03-02T10:00:00.0000000", "timeZone": "UTC"},
                "end": {"dateTime": "2026-03-02T10:30:00.0000000", "timeZone": "UTC"},
            },
        )

        assert event.summary == "Planning"
        assert event.start_time == at(10)
        assert event.end_time == at(10, 30)
        assert event.description == "Agenda"
        assert event.location == "Room 4"
        assert event.status == "confirmed"
        assert event.organizer == "lead@example.com"
        assert event.attendees == ["a@example.com"]
        assert not event.is_owned
        assert not event.is_recurring

    def test_named_zone(self):
        event = parse_provider_event(
            "microsoft",
            {
                "id": "AAMk2",
                "start": {"dateTime": "2026-03-02T11:00:00", "timeZone": "Europe/Berlin"},
                "end": {"dateTime": "2026-03-02T12:00:00", "timeZone": "Europe/Berlin"},
            },
        )
        assert event.start_time == at(10)

    def test_all_day_and_owned(self):
        event = parse_provider_event(
            "microsoft",
            {
                "id": "AAMk3",
                "isAllDay": True,
                "categories": [OWNER_TAG],
                "recurrence": {"pattern": {"type": "daily"}},
                "start": {"dateTime": "2026-03-02T00:00:00.0000000", "timeZone": "UTC"},
                "end": {"dateTime": "2026-03-03T00:00:00.0000000", "timeZone": "UTC"},
            },
        )
        assert event.is_all_day
        assert event.start_time == datetime(2026, 3, 2, tzinfo=UTC)
        assert event.is_owned
        assert event.is_recurring

    def test_cancelled(self):
        event = parse_provider_event(
            "microsoft",
            {
                "id": "AAMk4",
                "isCancelled": True,
                "showAs": "busy",
                "start": {"dateTime": "2026-03-02T10:00:00", "timeZone": "UTC"},
                "end": {"dateTime": "2026-03-02T11:00:00", "timeZone": "UTC"},
            },
        )
        assert event.is_cancelled

    def test_unusable_times_skipped(self):
        assert parse_provider_event("microsoft", {"id": "x", "start": {}, "end": {}}) is None
        windows_zone = {"dateTime": "2026-03-02T10:00:00", "timeZone": "Pacific Standard Time"}
        item = {"id": "y", "start": windows_zone, "end": windows_zone}
        assert parse_provider_event("microsoft", item) is None

    @pytest.mark.parametrize(
        ("show_as", "status"),
        [
            ("free", "free"),
            ("tentative", "tentative"),
            ("busy", "confirmed"),
            ("oof", "confirmed"),
            ("workingElsewhere", "confirmed"),
            ("", "confirmed"),
        ],
    )
    def test_status_mapping(self, show_as, status):
        assert map_microsoft_status(show_as) == status


class TestBlockToMicrosoftEvent:
    def test_body(self):
        schedule = Schedule(user_id="u1", date=DAY)
        start = at(9).astimezone(ZoneInfo("Europe/Berlin"))
        block = schedule.add_block("focus", "Deep work", start, at(11))
        schedule.mark_missed(block.id)

        body = block_to_microsoft_event(block)

        assert body["subject"] == f"[{block.id}] Deep work"
        assert body["body"] == {"contentType": "text", "content": "Type: focus\nStatus: Missed"}
        assert body["start"] == {"dateTime": "2026-03-02T09:00:00", "timeZone": "UTC"}
        assert body["end"] == {"dateTime": "2026-03-02T11:00:00", "timeZone": "UTC"}
        assert body["categories"] == [OWNER_TAG]
        assert body["showAs"] == "busy"
        assert block_id_from_subject(body["subject"]) == block.id

    def test_block_id_from_foreign_subject(self):
        assert block_id_from_subject("Lunch") is None
        assert block_id_from_subject("[unterminated") is None
        assert block_id_from_subject("[] Empty") is None
