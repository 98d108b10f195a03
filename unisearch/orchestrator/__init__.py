"""Fan-out, timeout, retry and health tracking for provider searches.

Public API
----------
* :class:`~unisearch.orchestrator.fanout.SearchOrchestrator`: runs one
  query against every connected capability concurrently and returns one
  outcome per task.
* :func:`~unisearch.orchestrator.runner.run_search`: wires HTTP adapters
  from settings and runs a single search; used by ``python -m unisearch``.
* :func:`~unisearch.orchestrator.tasks.bind_adapters` /
  :func:`~unisearch.orchestrator.tasks.build_tasks`: capability catalogue
  and task construction.
* :func:`~unisearch.orchestrator.resilience.execute_with_resilience`:
  timeout + retry + lifecycle logging around a single provider call.
* :func:`~unisearch.orchestrator.classifier.is_retryable`: transient vs.
  permanent error classification.
* :class:`~unisearch.orchestrator.health.HealthTracker`: last-write-wins
  per-capability health store.
"""

from unisearch.orchestrator.classifier import RETRYABLE_STATUS, is_retryable
from unisearch.orchestrator.fanout import BatchStats, SearchOrchestrator
from unisearch.orchestrator.health import HealthTracker
from unisearch.orchestrator.resilience import (
    DEFAULT_RETRY_CONFIG,
    DEFAULT_TIMEOUT_CONFIG,
    RetryConfig,
    TimeoutConfig,
    execute_with_resilience,
    with_retry,
    with_timeout,
)
from unisearch.orchestrator.runner import run_search
from unisearch.orchestrator.tasks import (
    CAPABILITY_CATALOGUE,
    CatalogueEntry,
    ProviderBinding,
    bind_adapters,
    build_tasks,
)

__all__ = [
    # Fan-out
    "SearchOrchestrator",
    "BatchStats",
    "run_search",
    # Tasks
    "CAPABILITY_CATALOGUE",
    "CatalogueEntry",
    "ProviderBinding",
    "bind_adapters",
    "build_tasks",
    # Resilience
    "TimeoutConfig",
    "RetryConfig",
    "DEFAULT_TIMEOUT_CONFIG",
    "DEFAULT_RETRY_CONFIG",
    "with_timeout",
    "with_retry",
    "execute_with_resilience",
    # Classification
    "RETRYABLE_STATUS",
    "is_retryable",
    # Health
    "HealthTracker",
]
