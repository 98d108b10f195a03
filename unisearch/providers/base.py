"""Adapter contract for every searchable provider capability.

An adapter serves exactly one capability (``google.gmail``,
``quickbooks.invoices``, ...) and exposes a single coroutine,
:meth:`BaseSearchAdapter.search`.  How it talks to the vendor API, and how
it obtains or refreshes credentials, is its own business.  The search core
only needs the contract below.

Error contract
--------------
Adapters translate vendor failures into a tagged
:class:`~unisearch.core.exceptions.ProviderError` subclass at this boundary.
The retry layer then decides on the tag alone.  Untranslated exceptions are
still tolerated; the classifier falls back to inspecting them.

Typical usage::

    from unisearch.providers.base import BaseSearchAdapter


    class SlackMessagesAdapter(BaseSearchAdapter):
        async def search(self, query: str, limit: int) -> list[dict]:
            ...

    async with SlackMessagesAdapter() as adapter:
        payload = await adapter.search("site visit", 5)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from types import TracebackType
from typing import Any

__all__ = ["BaseSearchAdapter"]

logger = logging.getLogger(__name__)


class BaseSearchAdapter(ABC):
    """Abstract base for provider capability adapters.

    The async context manager protocol is provided for free; override
    :meth:`close` to release sessions or connection pools.
    """

    async def close(self) -> None:  # noqa: B027
        """Release resources held by this adapter.  No-op by default."""

    async def __aenter__(self) -> BaseSearchAdapter:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @abstractmethod
    async def search(self, query: str, limit: int) -> Any:
        """Search this capability for *query*.

        Implementations should:

        * Return the provider-shaped payload untouched.  The core never
          interprets it; the ranking stage does.
        * Return at most *limit* items where the vendor API allows it.
        * Raise a tagged :class:`~unisearch.core.exceptions.ProviderError`
          on failure rather than returning an error value.
        * Be cancellation-safe: a timed-out attempt is cancelled at its
          current ``await``.

        Args:
            query: The user's search text.
            limit: Maximum number of results wanted from this capability.

        Returns:
            Opaque provider payload.
        """
