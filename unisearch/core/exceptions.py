"""Unisearch exception taxonomy.

Every custom exception inherits from :class:`UnisearchError`.  Provider
failures carry an explicit :class:`ErrorKind` tag so the retry layer can
decide what to do without re-inspecting ad-hoc attributes:

    Layer hierarchy
    ---------------
    UnisearchError
    ├── ConfigError
    ├── ProviderError                  (kind=other unless overridden)
    │   ├── ProviderRateLimitError     (kind=rate_limited)
    │   ├── ProviderAuthError          (kind=unauthorized)
    │   ├── ProviderNotFoundError      (kind=not_found)
    │   ├── ProviderServerError        (kind=server_error)
    │   ├── ProviderNetworkError       (kind=network)
    │   ├── ProviderTimeoutError       (kind=timeout)
    │   └── ProviderParseError         (kind=other)
    └── OrchestratorError

Usage:

    from unisearch.core.exceptions import ProviderServerError

    raise ProviderServerError("google.gmail", "Upstream unavailable", status_code=503)
"""

from __future__ import annotations

from enum import StrEnum
from typing import ClassVar

__all__ = [
    "ErrorKind",
    "UnisearchError",
    "ConfigError",
    "ProviderError",
    "ProviderRateLimitError",
    "ProviderAuthError",
    "ProviderNotFoundError",
    "ProviderServerError",
    "ProviderNetworkError",
    "ProviderTimeoutError",
    "ProviderParseError",
    "OrchestratorError",
]


class ErrorKind(StrEnum):
    """Failure categories decided once, at the adapter boundary."""

    RATE_LIMITED = "rate_limited"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    SERVER_ERROR = "server_error"
    NETWORK = "network"
    TIMEOUT = "timeout"
    OTHER = "other"


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class UnisearchError(Exception):
    """Root exception for all Unisearch errors."""


class ConfigError(UnisearchError):
    """Raised when configuration is invalid or incomplete.

    Examples:
        - A provider endpoint key is not of the form ``integration.service``.
        - No adapter can be built for a configured endpoint.
    """


# ---------------------------------------------------------------------------
# Provider layer
# ---------------------------------------------------------------------------


class ProviderError(UnisearchError):
    """Base class for every error raised by a provider adapter.

    Subclasses pin :attr:`kind` at class level; the base class defaults to
    :attr:`ErrorKind.OTHER` but accepts an explicit override so adapters for
    unusual APIs can still tag their failures precisely.

    Args:
        provider: Capability key or integration name (e.g. ``"slack.messages"``).
        message: Human-readable error description.
        status_code: HTTP-like status code, when the failure came from one.
        kind: Explicit tag overriding the class default.
    """

    default_kind: ClassVar[ErrorKind] = ErrorKind.OTHER

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        status_code: int | None = None,
        kind: ErrorKind | None = None,
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        self.kind = kind or self.default_kind
        super().__init__(f"[{provider}] {message}")


class ProviderRateLimitError(ProviderError):
    """HTTP 429 or an equivalent throttling signal.

    Args:
        provider: Capability key or integration name.
        retry_after: Back-off hint in seconds, if the provider sent one.
    """

    default_kind = ErrorKind.RATE_LIMITED

    def __init__(self, provider: str, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        detail = f"retry after {retry_after}s" if retry_after is not None else "no retry hint"
        super().__init__(provider, f"Rate limited ({detail})", status_code=429)


class ProviderAuthError(ProviderError):
    """Credentials were rejected (HTTP 401/403).  Never retried."""

    default_kind = ErrorKind.UNAUTHORIZED


class ProviderNotFoundError(ProviderError):
    """The searched resource does not exist (HTTP 404).  Never retried."""

    default_kind = ErrorKind.NOT_FOUND


class ProviderServerError(ProviderError):
    """Upstream returned a 5xx status."""

    default_kind = ErrorKind.SERVER_ERROR


class ProviderNetworkError(ProviderError):
    """Connection reset, refused, DNS failure or similar transport fault."""

    default_kind = ErrorKind.NETWORK


class ProviderTimeoutError(ProviderError):
    """An attempt did not complete within its deadline."""

    default_kind = ErrorKind.TIMEOUT


class ProviderParseError(ProviderError):
    """The provider answered but the payload could not be decoded."""


# ---------------------------------------------------------------------------
# Orchestrator layer
# ---------------------------------------------------------------------------


class OrchestratorError(UnisearchError):
    """Raised for failures in the orchestrator's own bookkeeping.

    Provider failures never surface as this error; they are demoted to failed
    outcomes.  This is the only fatal condition of a fan-out batch.
    """
