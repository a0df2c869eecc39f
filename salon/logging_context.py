"""Request ID logging context for tracing a request across modules.

Provides a request-aware logger that attaches a correlation ID to every
log record, making it easy to follow one booking or payment call from the
HTTP layer down to the store and the payment provider.

Usage:
    from salon.logging_context import get_request_logger, set_request_id

    set_request_id("REQ-abc123")
    logger = get_request_logger(__name__)
    logger.info("Creating booking")  # record.request_id == "REQ-abc123"
"""

import logging
import uuid
from contextvars import ContextVar, Token

_request_id: ContextVar[str] = ContextVar("request_id", default="NO_REQUEST_ID")


def new_request_id() -> str:
    """Generate a fresh correlation ID."""
    return f"REQ-{uuid.uuid4().hex[:12]}"


def set_request_id(request_id: str) -> Token:
    """Set the correlation ID for the current context."""
    return _request_id.set(request_id)


def reset_request_id(token: Token) -> None:
    """Restore the correlation ID that was active before ``set_request_id``."""
    _request_id.reset(token)


def get_request_id() -> str:
    """Retrieve the current correlation ID."""
    return _request_id.get()


class RequestIdFilter(logging.Filter):
    """Injects request_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()  # type: ignore[attr-defined]
        return True


def get_request_logger(name: str) -> logging.Logger:
    """Return a logger with the RequestIdFilter attached.

    The filter adds ``request_id`` to each record so formatters can
    include ``%(request_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, RequestIdFilter) for f in logger.filters):
        logger.addFilter(RequestIdFilter())
    return logger
