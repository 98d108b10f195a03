"""Search entry-point: assemble adapters from settings and run one query.

:func:`run_search` is what ``python -m unisearch`` calls.  Each call:

1. Loads :class:`~unisearch.core.settings.Settings` (or uses the supplied
   instance).
2. Builds one :class:`~unisearch.providers.http_adapter.HttpSearchAdapter`
   per entry of ``PROVIDER_ENDPOINTS``.
3. Enters every adapter's async context via
   :class:`contextlib.AsyncExitStack`.  An adapter that fails to initialise
   is logged and left disconnected; the others still run.
4. Binds the adapters against the capability catalogue and delegates to
   :meth:`~unisearch.orchestrator.fanout.SearchOrchestrator.execute_all`.
5. Closes every adapter on exit, including on exceptions.

Typical usage::

    import asyncio
    from unisearch.orchestrator.runner import run_search

    outcomes = asyncio.run(run_search("invoice 1042"))
"""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack

from unisearch.core.exceptions import ConfigError
from unisearch.core.models import ProviderCapability, TaskOutcome
from unisearch.core.settings import Settings
from unisearch.orchestrator.fanout import SearchOrchestrator
from unisearch.orchestrator.tasks import bind_adapters
from unisearch.providers.base import BaseSearchAdapter
from unisearch.providers.http_adapter import HttpSearchAdapter

__all__ = ["build_adapters", "run_search"]

logger = logging.getLogger(__name__)


def build_adapters(settings: Settings) -> dict[str, HttpSearchAdapter]:
    """Instantiate one HTTP adapter per configured endpoint.

    Raises:
        ConfigError: If an endpoint key is not ``integration.service``.
    """
    adapters: dict[str, HttpSearchAdapter] = {}
    for key, url in settings.provider_endpoints.items():
        try:
            capability = ProviderCapability.from_key(key)
        except ValueError as exc:
            raise ConfigError(f"Invalid PROVIDER_ENDPOINTS key {key!r}: {exc}") from exc
        adapters[capability.key] = HttpSearchAdapter(
            capability,
            url,
            connect_timeout=settings.http_connect_timeout_s,
        )
        logger.debug("HTTP adapter configured for %s.", capability.key)
    return adapters


async def run_search(
    query: str,
    settings: Settings | None = None,
    orchestrator: SearchOrchestrator | None = None,
) -> list[TaskOutcome]:
    """Run *query* against every configured provider endpoint.

    Args:
        query: The user's search text.
        settings: Pre-loaded settings.  If ``None``, a fresh instance is
            loaded from the environment and ``.env`` file.
        orchestrator: Long-lived orchestrator whose health store should
            record this search.  A throwaway instance built from *settings*
            is used when omitted.

    Returns:
        One outcome per connected capability, in catalogue order.  Empty
        when no endpoint is configured.

    Raises:
        ConfigError: If ``PROVIDER_ENDPOINTS`` contains a malformed key.
    """
    if settings is None:
        settings = Settings()
    if orchestrator is None:
        orchestrator = SearchOrchestrator(
            timeout_config=settings.to_timeout_config(),
            retry_config=settings.to_retry_config(),
        )

    adapters = build_adapters(settings)
    if not adapters:
        logger.warning("No provider endpoints configured. Set PROVIDER_ENDPOINTS to enable search.")

    async with AsyncExitStack() as stack:
        active: dict[str, BaseSearchAdapter | None] = {}
        for key, adapter in adapters.items():
            try:
                active[key] = await stack.enter_async_context(adapter)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "Adapter %s: failed to initialise, left disconnected: %s",
                    key,
                    exc,
                    exc_info=True,
                )
                active[key] = None

        return await orchestrator.execute_all(bind_adapters(active), query)
