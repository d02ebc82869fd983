"""
Request ids for units of work.

A scheduling run or a calendar sync enters a RequestContext; every log
record emitted inside it is stamped with the same id.
"""

import contextvars
import logging
import uuid

_request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "timeblock_request_id", default=None
)


def get_request_id() -> str | None:
    return _request_id_var.get()


def set_request_id(request_id: str) -> contextvars.Token:
    """Set the request id for the current context. Returns token for reset."""
    return _request_id_var.set(request_id)


def generate_request_id() -> str:
    return f"req-{uuid.uuid4().hex[:16]}"


class RequestContext:
    """
    Scope one unit of work under a request id.

    Without an explicit id, an id already active in the enclosing context
    is kept, so a sync started inside a caller's request logs under the
    caller's id.

    Usage:
        with RequestContext() as ctx:
            tt.auto_schedule(user_id, day, items)
    """

    def __init__(self, request_id: str | None = None):
        self.request_id = request_id or get_request_id() or generate_request_id()
        self._token: contextvars.Token | None = None

    def __enter__(self) -> "RequestContext":
        self._token = set_request_id(self.request_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _request_id_var.reset(self._token)
            self._token = None


class RequestIdFilter(logging.Filter):
    """Copies the active request id onto each record as `request_id`."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        return True
