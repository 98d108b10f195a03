"""Generic JSON-over-HTTP search adapter.

Serves one capability backed by a search endpoint that accepts
``GET <url>?q=<query>&limit=<n>`` and answers with JSON.  This is how the
command-line runner reaches gateway or proxy services that front the vendor
APIs, and it is the reference implementation of the adapter error contract.

Error mapping
-------------
Every failure leaves this module as a tagged
:class:`~unisearch.core.exceptions.ProviderError`:

=====================================  ==================================
Condition                              Raised
=====================================  ==================================
``httpx.TimeoutException``             :class:`ProviderTimeoutError`
other ``httpx.TransportError``         :class:`ProviderNetworkError`
HTTP 401 / 403                         :class:`ProviderAuthError`
HTTP 404                               :class:`ProviderNotFoundError`
HTTP 429                               :class:`ProviderRateLimitError`
HTTP 5xx                               :class:`ProviderServerError`
any other non-2xx                      :class:`ProviderError` (``other``)
2xx with an undecodable body           :class:`ProviderParseError`
=====================================  ==================================

The adapter does **not** retry.  Retries, backoff and deadlines belong to the
orchestrator so that every capability shares one policy.

Typical usage::

    from unisearch.core.models import ProviderCapability
    from unisearch.providers.http_adapter import HttpSearchAdapter

    cap = ProviderCapability(integration="procore", service="rfis")
    async with HttpSearchAdapter(cap, "https://gateway.local/procore/rfis") as a:
        payload = await a.search("slab pour", 5)
"""

from __future__ import annotations

import logging
from typing import Any, Final

import httpx

from unisearch.core.exceptions import (
    ProviderAuthError,
    ProviderError,
    ProviderNetworkError,
    ProviderNotFoundError,
    ProviderParseError,
    ProviderRateLimitError,
    ProviderServerError,
    ProviderTimeoutError,
)
from unisearch.core.models import ProviderCapability
from unisearch.providers.base import BaseSearchAdapter

__all__ = ["HttpSearchAdapter", "error_from_response"]

logger = logging.getLogger(__name__)

#: Default TCP connect timeout.  Read and write stay unbounded: the
#: per-attempt deadline is enforced by the orchestrator.
_DEFAULT_CONNECT_TIMEOUT: Final[float] = 5.0

_DEFAULT_HEADERS: Final[dict[str, str]] = {
    "Accept": "application/json",
    "User-Agent": "unisearch/0.1",
}


def _parse_retry_after(response: httpx.Response) -> float | None:
    """Extract a back-off hint from a 429 response, if any."""
    header = response.headers.get("retry-after", "")
    if header:
        try:
            return max(float(header), 0.0)
        except ValueError:
            logger.debug("Unparseable Retry-After header %r.", header)
    return None


def error_from_response(provider: str, response: httpx.Response) -> ProviderError:
    """Translate a non-2xx *response* into a tagged provider error.

    Args:
        provider: Capability key used as the error's provider label.
        response: The failed HTTP response.

    Returns:
        The matching :class:`~unisearch.core.exceptions.ProviderError`.
    """
    status = response.status_code
    if status in (401, 403):
        return ProviderAuthError(provider, f"HTTP {status}: credentials rejected", status_code=status)
    if status == 404:
        return ProviderNotFoundError(provider, "HTTP 404: resource not found", status_code=status)
    if status == 429:
        return ProviderRateLimitError(provider, retry_after=_parse_retry_after(response))
    if status >= 500:
        return ProviderServerError(provider, f"HTTP {status} from upstream", status_code=status)
    return ProviderError(provider, f"HTTP {status}: {response.text[:200]}", status_code=status)


class HttpSearchAdapter(BaseSearchAdapter):
    """Adapter for one capability exposed by a JSON search endpoint.

    Args:
        capability: The capability this adapter serves.
        url: Absolute endpoint URL.
        client: Optional pre-built :class:`httpx.AsyncClient`.  When omitted
            the adapter creates one lazily and owns (closes) it.
        connect_timeout: TCP connect timeout in seconds.
        headers: Extra default headers (e.g. a gateway API key).
    """

    def __init__(
        self,
        capability: ProviderCapability,
        url: str,
        *,
        client: httpx.AsyncClient | None = None,
        connect_timeout: float = _DEFAULT_CONNECT_TIMEOUT,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.capability = capability
        self.url = url
        self._client = client
        self._owns_client = client is None
        self._timeout = httpx.Timeout(None, connect=connect_timeout)
        self._headers = {**_DEFAULT_HEADERS, **(headers or {})}

    def __repr__(self) -> str:
        return f"HttpSearchAdapter({self.capability.key!r}, {self.url!r})"

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                headers=self._headers,
            )
            self._owns_client = True
            logger.debug("HTTP session opened for %s.", self.capability.key)
        return self._client

    async def close(self) -> None:
        """Close the owned HTTP client.  Safe to call repeatedly."""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            logger.debug("HTTP session closed for %s.", self.capability.key)
        if self._owns_client:
            self._client = None

    async def search(self, query: str, limit: int) -> Any:
        """GET the endpoint and return its decoded JSON body.

        Raises:
            ProviderError: Tagged according to the module-level error table.
        """
        provider = self.capability.key
        client = await self._ensure_client()

        try:
            response = await client.get(self.url, params={"q": query, "limit": limit})
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(provider, f"{type(exc).__name__}: timed out") from exc
        except httpx.TransportError as exc:
            raise ProviderNetworkError(provider, f"{type(exc).__name__}: {exc}") from exc

        logger.debug("GET %s → %d", self.url, response.status_code)

        if not response.is_success:
            raise error_from_response(provider, response)

        try:
            return response.json()
        except ValueError as exc:
            raise ProviderParseError(provider, f"Response is not valid JSON: {exc}") from exc
