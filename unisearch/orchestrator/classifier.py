"""Retry classifier: decide whether a failed provider call is worth retrying.

Transient failures (network resets, DNS failures, connect timeouts,
rate-limiting and upstream unavailability, attempt timeouts) are retryable.
Everything else, in particular authorization and not-found conditions, is
terminal because it will not resolve on its own.

Adapters are expected to raise a tagged
:class:`~unisearch.core.exceptions.ProviderError`, in which case the decision
is a lookup on :attr:`~unisearch.core.exceptions.ProviderError.kind`.  The
remaining checks cover exceptions that reach the orchestrator untranslated
(raw ``httpx`` errors, OS-level socket errors, third-party SDK errors that
expose a ``status`` / ``status_code`` attribute).
"""

from __future__ import annotations

import asyncio
import socket
from typing import Final

import httpx

from unisearch.core.exceptions import ErrorKind, ProviderError

__all__ = ["RETRYABLE_STATUS", "is_retryable"]

#: HTTP-like status codes that signal a transient condition.
RETRYABLE_STATUS: Final[frozenset[int]] = frozenset({429, 502, 503, 504})

#: Kinds that are always retryable regardless of status code.
_RETRYABLE_KINDS: Final[frozenset[ErrorKind]] = frozenset(
    {ErrorKind.RATE_LIMITED, ErrorKind.NETWORK, ErrorKind.TIMEOUT}
)

#: OS-level exception types for reset / refused / host-not-found / timeout.
_RETRYABLE_TYPES: Final[tuple[type[BaseException], ...]] = (
    ConnectionResetError,
    ConnectionRefusedError,
    socket.gaierror,
    TimeoutError,
    httpx.TransportError,
)

#: Message fragments produced by network stacks that lose the exception type.
_RETRYABLE_TOKENS: Final[tuple[str, ...]] = (
    "ECONNRESET",
    "ENOTFOUND",
    "ETIMEDOUT",
    "ECONNREFUSED",
)


def _status_of(exc: BaseException) -> int | None:
    """Best-effort HTTP status extraction for untagged exceptions."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def is_retryable(exc: BaseException) -> bool:
    """Return ``True`` if *exc* represents a transient provider failure.

    Pure function, no side effects.  Cancellation is never retryable.

    Args:
        exc: The exception raised by one attempt.

    Returns:
        ``True`` for transient failures, ``False`` for terminal ones.
    """
    if isinstance(exc, asyncio.CancelledError):
        return False

    if isinstance(exc, ProviderError):
        if exc.kind in _RETRYABLE_KINDS:
            return True
        if exc.kind is ErrorKind.SERVER_ERROR:
            return exc.status_code is None or exc.status_code in RETRYABLE_STATUS
        if exc.kind in (ErrorKind.UNAUTHORIZED, ErrorKind.NOT_FOUND):
            return False
        # Untyped provider errors fall through to the generic checks.

    if isinstance(exc, _RETRYABLE_TYPES):
        return True

    # A non-retryable status still defers to the message: SDKs often wrap
    # transport faults in a generic 4xx/5xx error.
    if _status_of(exc) in RETRYABLE_STATUS:
        return True

    message = str(exc)
    if any(token in message for token in _RETRYABLE_TOKENS):
        return True
    lowered = message.lower()
    return "timed out" in lowered or "timeout" in lowered
