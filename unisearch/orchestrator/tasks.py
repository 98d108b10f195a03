"""Search task builder: turn connected adapters into independent search tasks.

Inputs are an explicit list of :class:`ProviderBinding` pairs, one per
capability, each holding either an adapter or ``None``.  ``None`` means
"integration not connected" and is not an error: such capabilities simply
contribute no task.  The task count for a query is therefore the number of
connected capabilities, not a constant.

The fixed :data:`CAPABILITY_CATALOGUE` lists every capability the product
knows how to search together with its per-capability result limit.  Coarse
capabilities (mail, files, events) return 5 items; finer-grained
sub-resources (documents inside a suite, accounting line items) return 3.

Typical usage::

    from unisearch.orchestrator.tasks import bind_adapters, build_tasks

    bindings = bind_adapters({"google.gmail": gmail, "slack.messages": None})
    tasks = build_tasks(bindings, "concrete delivery schedule")
    # -> one SearchTask, for google.gmail
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Final

from unisearch.core.exceptions import ConfigError
from unisearch.core.models import ProviderCapability, SearchTask
from unisearch.providers.base import BaseSearchAdapter

__all__ = [
    "DEFAULT_LIMIT",
    "CatalogueEntry",
    "CAPABILITY_CATALOGUE",
    "ProviderBinding",
    "bind_adapters",
    "build_tasks",
]

logger = logging.getLogger(__name__)

#: Result limit for capabilities not listed in the catalogue.
DEFAULT_LIMIT: Final[int] = 5


@dataclass(frozen=True)
class CatalogueEntry:
    """A catalogue entry: a capability and its fixed result limit."""

    capability: ProviderCapability
    limit: int


def _entry(integration: str, service: str, limit: int) -> CatalogueEntry:
    return CatalogueEntry(ProviderCapability(integration=integration, service=service), limit)


#: Every searchable capability, in task submission order.
CAPABILITY_CATALOGUE: Final[tuple[CatalogueEntry, ...]] = (
    # Google Workspace
    _entry("google", "gmail", 5),
    _entry("google", "drive", 5),
    _entry("google", "calendar", 5),
    _entry("google", "docs", 3),
    _entry("google", "sheets", 3),
    _entry("google", "people", 5),
    # Chat / work management
    _entry("slack", "messages", 5),
    _entry("asana", "tasks", 5),
    # Accounting
    _entry("quickbooks", "customers", 3),
    _entry("quickbooks", "invoices", 3),
    _entry("quickbooks", "items", 3),
    _entry("quickbooks", "payments", 3),
    # Microsoft 365
    _entry("microsoft", "outlook", 5),
    _entry("microsoft", "onedrive", 5),
    _entry("microsoft", "calendar", 5),
    _entry("microsoft", "word", 5),
    _entry("microsoft", "excel", 5),
    # Construction
    _entry("procore", "documents", 5),
    _entry("procore", "rfis", 5),
)


@dataclass(frozen=True)
class ProviderBinding:
    """One ``(capability, adapter-or-None)`` pair for a single query.

    Attributes:
        capability: The capability this binding describes.
        adapter: Connected adapter, or ``None`` if the integration is not
            connected for the current user.
        limit: Maximum results requested from the adapter.
    """

    capability: ProviderCapability
    adapter: BaseSearchAdapter | None
    limit: int = DEFAULT_LIMIT

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValueError(f"limit must be ≥ 1, got {self.limit!r} for {self.capability.key}.")

    @property
    def connected(self) -> bool:
        return self.adapter is not None


def bind_adapters(
    adapters: Mapping[str, BaseSearchAdapter | None],
    catalogue: Iterable[CatalogueEntry] = CAPABILITY_CATALOGUE,
) -> list[ProviderBinding]:
    """Pair every catalogue capability with its adapter (or ``None``).

    Catalogue capabilities come first, in catalogue order.  Keys in
    *adapters* that the catalogue does not know are appended afterwards,
    sorted by key, with :data:`DEFAULT_LIMIT`.

    Args:
        adapters: ``{"integration.service": adapter_or_None}``.
        catalogue: Capability catalogue to bind against.

    Returns:
        The full binding list, connected or not.

    Raises:
        ConfigError: If an extra key is not a valid ``integration.service``.
    """
    entries = list(catalogue)
    known = {entry.capability.key for entry in entries}

    bindings = [
        ProviderBinding(entry.capability, adapters.get(entry.capability.key), entry.limit)
        for entry in entries
    ]

    for key in sorted(set(adapters) - known):
        try:
            capability = ProviderCapability.from_key(key)
        except ValueError as exc:
            raise ConfigError(f"Invalid capability key {key!r}: {exc}") from exc
        logger.debug("Capability %s is not catalogued; using limit %d.", key, DEFAULT_LIMIT)
        bindings.append(ProviderBinding(capability, adapters[key], DEFAULT_LIMIT))

    return bindings


def _bind_call(adapter: BaseSearchAdapter, query: str, limit: int) -> Callable[[], Awaitable[Any]]:
    """Close *query* and *limit* over a call to ``adapter.search``."""

    def invoke() -> Awaitable[Any]:
        return adapter.search(query, limit)

    return invoke


def build_tasks(bindings: Iterable[ProviderBinding], query: str) -> list[SearchTask]:
    """Build one independent :class:`SearchTask` per connected binding.

    Disconnected bindings (``adapter is None``) are skipped silently.  Task
    order follows binding order, which fixes the outcome order of the batch.

    Args:
        bindings: Capability/adapter pairs for this query.
        query: The user's search text.

    Returns:
        A fresh task list owned by the caller.
    """
    tasks: list[SearchTask] = []
    skipped: list[str] = []
    for binding in bindings:
        if binding.adapter is None:
            skipped.append(binding.capability.key)
            continue
        tasks.append(
            SearchTask(
                capability=binding.capability,
                invoke=_bind_call(binding.adapter, query, binding.limit),
            )
        )

    if skipped:
        logger.debug("Not connected, no task built: %s", ", ".join(skipped))
    return tasks
