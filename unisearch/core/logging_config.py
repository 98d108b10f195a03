"""Unisearch logging configuration.

Call ``configure_logging()`` once at process startup.  Every other module
defines its own logger at module scope:

    import logging
    logger = logging.getLogger(__name__)

Supported environment variables (read at call time):
    LOG_LEVEL   DEBUG | INFO | WARNING | ERROR | CRITICAL   (default: INFO)
    LOG_FORMAT  text | json                                 (default: text)

Two filters are installed on the handler:

* :class:`RequestContextFilter` stamps ``record.request_id`` from
  :data:`REQUEST_ID_CTX`, so every line of one search batch (including lines
  emitted by child tasks) can be grouped.
* :class:`SensitiveDataFilter` masks e-mail addresses, bearer / JWT tokens and
  long API-key-like strings.  Search queries and provider errors routinely
  contain them.
"""

from __future__ import annotations

import json
import logging
import os
import re
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

__all__ = [
    "REQUEST_ID_CTX",
    "RequestContextFilter",
    "SensitiveDataFilter",
    "JsonFormatter",
    "configure_logging",
    "scrub_text",
]

#: Correlation id of the search batch currently running.  Set by
#: :meth:`~unisearch.orchestrator.fanout.SearchOrchestrator.execute_all` and
#: inherited by the tasks it spawns.  ``"-"`` outside any batch.
REQUEST_ID_CTX: ContextVar[str] = ContextVar("request_id", default="-")

_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_VALID_FORMATS = {"text", "json"}

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(request_id)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_REDACTED = "[REDACTED]"

# Order matters: JWTs would otherwise be partially eaten by the API-key rule.
_SENSITIVE_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\beyJ[A-Za-z0-9_-]*\.[A-Za-z0-9_-]*\.[A-Za-z0-9_-]*"), "[JWT]"),
    (re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/=-]+"), "Bearer [TOKEN]"),
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[EMAIL]"),
    (re.compile(r"\b[A-Za-z0-9]{32,}\b"), "[KEY]"),
)

_SENSITIVE_KEY_FRAGMENTS: tuple[str, ...] = (
    "password",
    "secret",
    "token",
    "authorization",
    "api_key",
    "apikey",
    "cookie",
)


def scrub_text(text: str) -> str:
    """Return *text* with every sensitive pattern masked."""
    for pattern, replacement in _SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class RequestContextFilter(logging.Filter):
    """Attach the current ``request_id`` to every record."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.request_id = REQUEST_ID_CTX.get()
        return True


class SensitiveDataFilter(logging.Filter):
    """Mask sensitive values in the message and in string ``extra`` fields.

    The message is rendered once (``msg % args``) and replaced by its scrubbed
    form.  Extra fields whose *name* looks sensitive are replaced wholesale.
    The filter never drops a record.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        try:
            rendered = record.getMessage()
        except (TypeError, ValueError):
            # Leave malformed records to the formatter's own error handling.
            return True
        record.msg = scrub_text(rendered)
        record.args = None

        for name, value in list(record.__dict__.items()):
            if name in JsonFormatter.RECORD_ATTRS or name == "request_id":
                continue
            if any(fragment in name.lower() for fragment in _SENSITIVE_KEY_FRAGMENTS):
                setattr(record, name, _REDACTED)
            elif isinstance(value, str):
                setattr(record, name, scrub_text(value))
        return True


class JsonFormatter(logging.Formatter):
    """Emit one JSON object per record.

    Output shape::

        {
            "ts":      "2026-10-19T08:12:44.031Z",
            "level":   "INFO",
            "logger":  "unisearch.orchestrator.fanout",
            "message": "Search batch completed",
            "extra":   {"event": "batch_completed", "total": 17, ...}
        }

    ``exc_info`` and ``stack_info`` keys appear only when present.
    """

    #: LogRecord attributes that never belong under ``"extra"``.
    RECORD_ATTRS: frozenset[str] = frozenset(
        {
            "args",
            "asctime",
            "created",
            "exc_info",
            "exc_text",
            "filename",
            "funcName",
            "levelname",
            "levelno",
            "lineno",
            "message",
            "module",
            "msecs",
            "msg",
            "name",
            "pathname",
            "process",
            "processName",
            "relativeCreated",
            "stack_info",
            "taskName",
            "thread",
            "threadName",
        }
    )

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        record.message = record.getMessage()
        stamp = datetime.fromtimestamp(record.created, tz=UTC)
        payload: dict[str, Any] = {
            "ts": stamp.strftime("%Y-%m-%dT%H:%M:%S.") + f"{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
            "extra": {k: v for k, v in record.__dict__.items() if k not in self.RECORD_ATTRS},
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        elif record.exc_text:
            payload["exc_info"] = record.exc_text
        if record.stack_info:
            payload["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(payload, default=str)


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    *,
    force: bool = False,
) -> None:
    """Configure the root logger for the whole process.

    Args:
        level: DEBUG/INFO/WARNING/ERROR/CRITICAL.  Falls back to
            ``$LOG_LEVEL``, then ``"INFO"``.
        fmt: ``"text"`` or ``"json"``.  Falls back to ``$LOG_FORMAT``, then
            ``"text"``.
        force: Replace existing handlers even if logging is already set up.

    Raises:
        ValueError: If *level* or *fmt* is not recognised.
    """
    resolved_level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    resolved_fmt = (fmt or os.environ.get("LOG_FORMAT", "text")).lower()

    if resolved_level not in _VALID_LEVELS:
        raise ValueError(
            f"Unknown LOG_LEVEL {resolved_level!r}. "
            f"Must be one of: {', '.join(sorted(_VALID_LEVELS))}"
        )
    if resolved_fmt not in _VALID_FORMATS:
        raise ValueError(
            f"Unknown LOG_FORMAT {resolved_fmt!r}. "
            f"Must be one of: {', '.join(sorted(_VALID_FORMATS))}"
        )

    root = logging.getLogger()
    if root.handlers and not force:
        root.setLevel(resolved_level)
        return
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(resolved_level)
    handler.addFilter(RequestContextFilter())
    handler.addFilter(SensitiveDataFilter())
    if resolved_fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(fmt=_TEXT_FORMAT, datefmt=_DATE_FORMAT))

    root.setLevel(resolved_level)
    root.addHandler(handler)

    if resolved_level != "DEBUG":
        for noisy in ("httpx", "httpcore", "asyncio"):
            logging.getLogger(noisy).setLevel(logging.WARNING)
