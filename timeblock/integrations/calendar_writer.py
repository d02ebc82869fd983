"""
Calendar Writer - Google Calendar client used by the reconciler.

Handles inserting, updating, deleting and listing events through the
Google API with a per-user OAuth credential. Every request is bounded by
a socket timeout; failures surface as CalendarSyncError so callers can
count them per item.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

import httplib2
from google.auth.exceptions import GoogleAuthError
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from timeblock import config
from timeblock.errors import CalendarSyncError, ConfigurationError
from timeblock.integrations.calendar_events import OWNER_TAG

logger = logging.getLogger(__name__)

PROVIDER = "google"
SCOPES = ["https://www.googleapis.com/auth/calendar"]

# Google answers an insert of an existing event id with 409 Conflict
STATUS_CONFLICT = 409


@dataclass
class CalendarWriteResult:
    """Result of a single upsert."""

    event_id: str
    updated: bool
    data: dict | None = None


def _status_of(error: HttpError) -> int | None:
    status = getattr(error, "status_code", None)
    if status is None and getattr(error, "resp", None) is not None:
        status = getattr(error.resp, "status", None)
    return int(status) if status is not None else None


class CalendarWriter:
    """Create, update, delete and list events in one Google calendar."""

    provider = PROVIDER

    def __init__(
        self,
        credentials=None,
        calendar_id: str | None = None,
        timeout: float | None = None,
        dry_run: bool = False,
    ):
        """
        Initialize CalendarWriter.

        Args:
            credentials: google.auth credentials for the user.
            calendar_id: Calendar to write to. Defaults to config.CALENDAR_ID.
            timeout: Socket timeout in seconds. Defaults to config.CALENDAR_TIMEOUT.
            dry_run: If True, validate without sending.
        """
        self.credentials = credentials
        self.calendar_id = calendar_id or config.CALENDAR_ID
        self.timeout = timeout if timeout is not None else config.CALENDAR_TIMEOUT
        self.dry_run = dry_run
        self._service = None

    def _get_service(self):
        """Get Calendar API service bound to the user's credentials."""
        if self._service:
            return self._service
        if self.credentials is None:
            raise ConfigurationError("No credentials configured for Google Calendar")

        http = AuthorizedHttp(self.credentials, http=httplib2.Http(timeout=self.timeout))
        self._service = build("calendar", "v3", http=http, cache_discovery=False)
        return self._service

    def _execute(self, request, action: str):
        try:
            return request.execute()
        except HttpError as e:
            status = _status_of(e)
            raise CalendarSyncError(f"Failed to {action}: status={status} {e}", status=status) from e
        except (httplib2.HttpLib2Error, OSError) as e:
            raise CalendarSyncError(f"Failed to {action}: {e}") from e
        except GoogleAuthError as e:
            # Token refresh failed inside the authorized transport
            raise CalendarSyncError(f"Failed to {action}: {e}") from e

    def insert_event(self, body: dict) -> dict:
        if self.dry_run:
            return {"dry_run": True, **body}
        service = self._get_service()
        return self._execute(
            service.events().insert(calendarId=self.calendar_id, body=body),
            f"insert event {body.get('id')}",
        )

    def update_event(self, event_id: str, body: dict) -> dict:
        if self.dry_run:
            return {"dry_run": True, **body}
        service = self._get_service()
        return self._execute(
            service.events().update(calendarId=self.calendar_id, eventId=event_id, body=body),
            f"update event {event_id}",
        )

    def upsert_event(self, body: dict) -> CalendarWriteResult:
        """
        Insert an event keyed by its id; if it already exists, update it.

        Idempotent under retry without reading first.
        """
        event_id = body["id"]
        try:
            data = self.insert_event(body)
            logger.debug("Created event %s", event_id)
            return CalendarWriteResult(event_id=data.get("id", event_id), updated=False, data=data)
        except CalendarSyncError as e:
            if e.status != STATUS_CONFLICT:
                raise

        data = self.update_event(event_id, body)
        logger.debug("Updated event %s", event_id)
        return CalendarWriteResult(event_id=data.get("id", event_id), updated=True, data=data)

    def delete_event(self, event_id: str) -> None:
        if self.dry_run:
            return
        service = self._get_service()
        self._execute(
            service.events().delete(calendarId=self.calendar_id, eventId=event_id),
            f"delete event {event_id}",
        )
        logger.info("Deleted event %s", event_id)

    def list_events(
        self,
        time_min: datetime | None = None,
        time_max: datetime | None = None,
        only_owned: bool = False,
    ) -> list[dict]:
        """
        List raw events, following pagination.

        Args:
            time_min: Lower bound (exclusive) on event end
            time_max: Upper bound (exclusive) on event start
            only_owned: Only events tagged as created by this system
        """
        service = self._get_service()
        params = {"calendarId": self.calendar_id}
        if time_min is not None and time_max is not None:
            params.update(
                timeMin=time_min.isoformat(),
                timeMax=time_max.isoformat(),
                singleEvents=True,
                orderBy="startTime",
            )
        if only_owned:
            params["privateExtendedProperty"] = f"{OWNER_TAG}=1"

        items: list[dict] = []
        page_token = None
        while True:
            if page_token:
                params["pageToken"] = page_token
            response = self._execute(service.events().list(**params), "list events")
            items.extend(response.get("items", []))
            page_token = response.get("nextPageToken")
            if not page_token:
                return items

    def list_calendars(self) -> list[dict]:
        service = self._get_service()
        response = self._execute(service.calendarList().list(), "list calendars")
        return [
            {
                "id": item.get("id"),
                "name": item.get("summary", ""),
                "primary": bool(item.get("primary", False)),
            }
            for item in response.get("items", [])
        ]
