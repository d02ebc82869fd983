"""
Calendar Sync - reconcile time blocks with an external calendar.

Push is idempotent: every block maps to an event id derived from its own
id, so re-pushing updates the same event instead of duplicating it.
Failures are per item; one bad block never aborts a batch.

Pull returns canonical CalendarEvent records. Conflict checks run against
the pulled events.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from timeblock.config import Settings, get_settings
from timeblock.errors import CalendarSyncError, ConfigurationError
from timeblock.integrations.calendar_events import (
    CalendarEvent,
    block_to_google_event,
    event_id_for_block,
    event_id_for_block_id,
    parse_provider_event,
)
from timeblock.integrations.calendar_writer import CalendarWriter
from timeblock.time_truth.block_manager import TimeBlock

logger = logging.getLogger(__name__)

# Remote event already gone
GONE_STATUSES = (404, 410)


@dataclass
class SyncResult:
    created: int = 0
    updated: int = 0
    deleted: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> dict:
        return {
            "created": self.created,
            "updated": self.updated,
            "deleted": self.deleted,
            "failed": self.failed,
            "errors": list(self.errors),
        }


def find_conflicts(
    events: Iterable[CalendarEvent], start: datetime, end: datetime
) -> list[CalendarEvent]:
    """
    Events overlapping [start, end). Cancelled events never conflict.
    """
    return [e for e in events if not e.is_cancelled and e.overlaps(start, end)]


class CalendarSync:
    """
    Calendar reconciler for one provider account per user.

    Credentials come from token_source(user_id), which returns google.auth
    credentials (token exchange and refresh happen outside this class).
    """

    def __init__(
        self,
        store,
        token_source: Callable | None = None,
        writer_factory: Callable[..., CalendarWriter] = CalendarWriter,
        settings: Settings | None = None,
        dry_run: bool = False,
        clock=None,
    ):
        self.store = store
        self.token_source = token_source
        self.writer_factory = writer_factory
        self.settings = settings or get_settings()
        self.dry_run = dry_run
        self._clock = clock or (lambda: datetime.now(UTC))

    def _writer(self, user_id: str, calendar_id: str | None = None) -> CalendarWriter:
        if self.token_source is None:
            raise ConfigurationError("No token source configured for calendar sync")
        credentials = self.token_source(user_id)
        if credentials is None:
            raise ConfigurationError(f"No calendar credentials for user {user_id}")
        self._warn_if_expiring(user_id, credentials)
        return self.writer_factory(
            credentials=credentials,
            calendar_id=calendar_id or self.settings.calendar_id,
            timeout=self.settings.calendar_timeout,
            dry_run=self.dry_run,
        )

    def _warn_if_expiring(self, user_id: str, credentials) -> None:
        expiry = getattr(credentials, "expiry", None)
        if not isinstance(expiry, datetime):
            return
        # google.auth keeps expiry as naive UTC
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=UTC)
        remaining = expiry - self._clock()
        if remaining < self.settings.token_expiry_warn:
            logger.warning(
                "Calendar token for %s expires in %.1fh", user_id, remaining.total_seconds() / 3600
            )

    # ==================== Push ====================

    def sync(
        self,
        user_id: str,
        blocks: Iterable[TimeBlock],
        delete_missing: bool = False,
        prune_window: tuple[datetime, datetime] | None = None,
        attendees: list[str] | None = None,
        reminders: list[int] | None = None,
        calendar_id: str | None = None,
    ) -> SyncResult:
        """
        Push blocks to the user's calendar.

        Args:
            user_id: Owner of the blocks
            blocks: Blocks to push (insert, or update when already present)
            delete_missing: Delete owned remote events not among blocks
            prune_window: Limit pruning to owned events in this range
            attendees: Emails invited to every pushed event
            reminders: Popup reminder offsets in minutes

        Returns:
            SyncResult with per-operation counts
        """
        writer = self._writer(user_id, calendar_id)
        result = SyncResult()
        keep: set[str] = set()

        for block in blocks:
            body = block_to_google_event(block, attendees=attendees, reminders=reminders)
            keep.add(body["id"])
            try:
                written = writer.upsert_event(body)
            except CalendarSyncError as e:
                result.failed += 1
                result.errors.append(f"{block.id}: {e}")
                logger.warning("Failed to push block %s for %s: %s", block.id, user_id, e)
                continue

            if written.updated:
                result.updated += 1
            else:
                result.created += 1
            if not self.dry_run:
                self.store.upsert_link(
                    user_id, writer.provider, writer.calendar_id, block.id, written.event_id
                )

        if delete_missing:
            self._prune(writer, user_id, keep, prune_window, result)

        logger.info(
            "Calendar sync for %s: created=%d updated=%d deleted=%d failed=%d",
            user_id,
            result.created,
            result.updated,
            result.deleted,
            result.failed,
        )
        return result

    def _prune(
        self,
        writer: CalendarWriter,
        user_id: str,
        keep: set[str],
        window: tuple[datetime, datetime] | None,
        result: SyncResult,
    ) -> None:
        time_min, time_max = window if window else (None, None)
        try:
            owned = writer.list_events(time_min, time_max, only_owned=True)
        except CalendarSyncError as e:
            result.failed += 1
            result.errors.append(f"list owned events: {e}")
            logger.warning("Failed to list owned events for %s: %s", user_id, e)
            return

        for item in owned:
            event_id = item.get("id")
            if not event_id or event_id in keep or item.get("status") == "cancelled":
                continue
            try:
                writer.delete_event(event_id)
            except CalendarSyncError as e:
                result.failed += 1
                result.errors.append(f"{event_id}: {e}")
                logger.warning("Failed to delete event %s for %s: %s", event_id, user_id, e)
                continue
            result.deleted += 1
            if not self.dry_run:
                self.store.delete_links(
                    user_id,
                    block_id=event_id,
                    provider=writer.provider,
                    calendar_id=writer.calendar_id,
                )

    def delete_event(self, user_id: str, block_id: str, calendar_id: str | None = None) -> bool:
        """
        Delete the remote event of one block and its link.

        Returns False when there was nothing to delete remotely.
        """
        writer = self._writer(user_id, calendar_id)
        link = self.store.get_link(user_id, writer.provider, writer.calendar_id, block_id)
        event_id = link.remote_event_id if link else event_id_for_block_id(block_id)

        deleted = True
        try:
            writer.delete_event(event_id)
        except CalendarSyncError as e:
            if e.status not in GONE_STATUSES:
                raise
            logger.info("Event %s for block %s already gone", event_id, block_id)
            deleted = False

        if not self.dry_run:
            self.store.delete_links(
                user_id, block_id=block_id, provider=writer.provider, calendar_id=writer.calendar_id
            )
        return deleted

    # ==================== Pull ====================

    def list_events(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        only_owned: bool = False,
        calendar_id: str | None = None,
    ) -> list[CalendarEvent]:
        """Events in [start, end). Events without usable times are skipped."""
        writer = self._writer(user_id, calendar_id)
        events = []
        for item in writer.list_events(start, end, only_owned=only_owned):
            event = parse_provider_event(writer.provider, item)
            if event is None:
                logger.debug("Skipping event %s without valid times", item.get("id"))
                continue
            events.append(event)
        return events

    def check_conflicts(
        self, user_id: str, start: datetime, end: datetime, calendar_id: str | None = None
    ) -> list[CalendarEvent]:
        """Remote events overlapping a proposed interval."""
        return find_conflicts(self.list_events(user_id, start, end, calendar_id=calendar_id), start, end)

    # ==================== Account ====================

    def list_calendars(self, user_id: str) -> list[dict]:
        return self._writer(user_id).list_calendars()

    def is_synced(self, user_id: str, block: TimeBlock, calendar_id: str | None = None) -> bool:
        link = self.store.get_link(
            user_id, CalendarWriter.provider, calendar_id or self.settings.calendar_id, block.id
        )
        return link is not None and link.remote_event_id == event_id_for_block(block)

    def disconnect(self, user_id: str, calendar_id: str | None = None) -> int:
        """
        Forget every link to a calendar (all calendars when None).

        Remote events are left in place. Returns links removed.
        """
        removed = self.store.delete_links(
            user_id, provider=CalendarWriter.provider, calendar_id=calendar_id
        )
        logger.info("Disconnected %s from calendar %s (%d links)", user_id, calendar_id or "*", removed)
        return removed
