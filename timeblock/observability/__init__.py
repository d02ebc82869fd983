"""
Observability module: structured logging and request IDs.

Usage:
    from timeblock.observability import get_logger, RequestContext

    logger = get_logger(__name__)
    logger.info("Processing request", extra={"user_id": "123"})

    with RequestContext() as ctx:
        logger.info("Request started", extra={"request_id": ctx.request_id})
"""

from .context import (
    RequestContext,
    RequestIdFilter,
    generate_request_id,
    get_request_id,
    set_request_id,
)
from .logging import HumanFormatter, JSONFormatter, configure_logging, get_logger

__all__ = [
    # Logging
    "get_logger",
    "configure_logging",
    "JSONFormatter",
    "HumanFormatter",
    # Context
    "RequestContext",
    "RequestIdFilter",
    "generate_request_id",
    "get_request_id",
    "set_request_id",
]
