"""Fan-out orchestrator: run every search task concurrently, isolate failures.

:meth:`SearchOrchestrator.execute_all` is the engine's single entry point.
For one query it:

1. **Builds** the task list from the supplied bindings (one task per
   connected capability).
2. **Dispatches** every task concurrently with
   ``asyncio.gather(..., return_exceptions=True)``.  Each task runs inside
   its own guard, so a failing or crashing provider never cancels, blocks or
   poisons its siblings.
3. **Demotes** terminal failures (after timeout and retry) to failed
   :class:`~unisearch.core.models.TaskOutcome` records.
4. **Records** every completed task in the owned
   :class:`~unisearch.orchestrator.health.HealthTracker`.
5. **Returns** exactly one outcome per task, in submission order.

Provider-level failures are never raised.  An empty list is a valid result
(nothing connected, or nothing matched).

Typical usage::

    from unisearch.orchestrator import SearchOrchestrator, bind_adapters

    orchestrator = SearchOrchestrator()          # once per process
    outcomes = await orchestrator.execute_all(
        bind_adapters({"google.gmail": gmail_adapter}),
        "site visit notes",
    )
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from unisearch.core import events
from unisearch.core.exceptions import OrchestratorError
from unisearch.core.logging_config import REQUEST_ID_CTX
from unisearch.core.models import SearchTask, TaskOutcome
from unisearch.orchestrator.health import HealthTracker
from unisearch.orchestrator.resilience import (
    DEFAULT_RETRY_CONFIG,
    DEFAULT_TIMEOUT_CONFIG,
    RetryConfig,
    TimeoutConfig,
    execute_with_resilience,
)
from unisearch.orchestrator.tasks import ProviderBinding, build_tasks

__all__ = [
    "BatchStats",
    "SearchOrchestrator",
]

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> float:
    return (time.monotonic() - started) * 1000.0


# ---------------------------------------------------------------------------
# Batch statistics
# ---------------------------------------------------------------------------


@dataclass
class BatchStats:
    """Counters for one ``execute_all`` call.

    Attributes:
        outcomes: The batch's outcomes, in submission order.
        duration_ms: Wall-clock time of the whole batch.
    """

    outcomes: list[TaskOutcome] = field(default_factory=list)
    duration_ms: float = 0.0

    @classmethod
    def from_outcomes(cls, outcomes: Iterable[TaskOutcome], duration_ms: float = 0.0) -> BatchStats:
        return cls(outcomes=list(outcomes), duration_ms=duration_ms)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def successes(self) -> int:
        """Number of tasks whose provider call eventually succeeded."""
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failures(self) -> int:
        return self.total - self.successes

    @property
    def failed_capabilities(self) -> list[str]:
        """Capability keys of failed tasks, in submission order."""
        return [o.key for o in self.outcomes if not o.success]

    def format_batch_report(self) -> str:
        """Return a one-line human-readable summary of the batch."""
        report = (
            f"Batch complete: tasks={self.total} ok={self.successes} "
            f"failed={self.failures} in {self.duration_ms:.0f} ms"
        )
        if self.failed_capabilities:
            report += f" | failed: {', '.join(self.failed_capabilities)}"
        return report


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class SearchOrchestrator:
    """Owns the resilience policy and the health store for fan-out searches.

    Create one instance per process and hand it to whatever serves search
    requests; the health store accumulates across batches for as long as
    the instance lives.

    Args:
        health: Health store to record into.  A fresh
            :class:`~unisearch.orchestrator.health.HealthTracker` is created
            when omitted.
        timeout_config: Per-attempt deadline applied to every task.
        retry_config: Retry budget and backoff applied to every task.
    """

    def __init__(
        self,
        health: HealthTracker | None = None,
        timeout_config: TimeoutConfig = DEFAULT_TIMEOUT_CONFIG,
        retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
    ) -> None:
        self._health = health if health is not None else HealthTracker()
        self._timeout_config = timeout_config
        self._retry_config = retry_config

    @property
    def health(self) -> HealthTracker:
        return self._health

    # ------------------------------------------------------------------
    # Per-task unit
    # ------------------------------------------------------------------

    async def _run_task(self, task: SearchTask) -> TaskOutcome:
        """Run one task to a terminal outcome.  Never raises for provider errors."""
        capability = task.capability
        started = time.monotonic()
        try:
            data = await execute_with_resilience(
                task.invoke,
                capability.integration,
                capability.service,
                self._timeout_config,
                self._retry_config,
            )
        except Exception as exc:  # noqa: BLE001
            duration_ms = _elapsed_ms(started)
            error = str(exc) or type(exc).__name__
            logger.warning(
                "Task %s failed after %.0f ms: %s",
                capability.key,
                duration_ms,
                exc,
                extra={
                    "event": events.TASK_FAILED,
                    "integration": capability.integration,
                    "service": capability.service,
                    "duration_ms": duration_ms,
                    "error": error,
                },
            )
            self._health.record_outcome(capability, healthy=False)
            return TaskOutcome(
                capability=capability,
                success=False,
                duration_ms=duration_ms,
                error=error,
            )

        self._health.record_outcome(capability, healthy=True)
        return TaskOutcome(
            capability=capability,
            success=True,
            data=data,
            duration_ms=_elapsed_ms(started),
        )

    def _crashed_outcome(self, task: SearchTask, exc: BaseException, started: float) -> TaskOutcome:
        """Convert an exception that escaped :meth:`_run_task` into a failed outcome."""
        capability = task.capability
        logger.error(
            "Task %s crashed outside its guard: %r",
            capability.key,
            exc,
            exc_info=exc,
            extra={
                "event": events.TASK_CRASHED,
                "integration": capability.integration,
                "service": capability.service,
                "error": repr(exc),
            },
        )
        self._health.record_outcome(capability, healthy=False)
        return TaskOutcome(
            capability=capability,
            success=False,
            duration_ms=_elapsed_ms(started),
            error=str(exc) or type(exc).__name__,
        )

    # ------------------------------------------------------------------
    # Batch entry point
    # ------------------------------------------------------------------

    async def execute_all(
        self,
        bindings: Iterable[ProviderBinding],
        query: str,
        *,
        request_id: str | None = None,
    ) -> list[TaskOutcome]:
        """Search every connected capability for *query* concurrently.

        Args:
            bindings: One ``(capability, adapter-or-None)`` pair per
                capability; disconnected capabilities produce no task.
            query: The user's search text, passed verbatim to each adapter.
            request_id: Correlation id stamped on every log line of the
                batch.  A short random id is generated when omitted.

        Returns:
            One :class:`~unisearch.core.models.TaskOutcome` per task, in
            submission order.  Empty when nothing is connected.

        Raises:
            OrchestratorError: If the batch's own bookkeeping is inconsistent.
                Provider failures never raise.
        """
        token = REQUEST_ID_CTX.set(request_id or uuid.uuid4().hex[:8])
        try:
            return await self._execute(build_tasks(bindings, query))
        finally:
            REQUEST_ID_CTX.reset(token)

    async def _execute(self, tasks: Sequence[SearchTask]) -> list[TaskOutcome]:
        if not tasks:
            logger.info("No connected capabilities; nothing to search.")
            return []

        started = time.monotonic()
        logger.info(
            "Fan-out starting: %d task(s)",
            len(tasks),
            extra={
                "event": events.BATCH_STARTED,
                "total": len(tasks),
                "capabilities": [t.capability.key for t in tasks],
            },
        )

        raw_results = await asyncio.gather(
            *(self._run_task(task) for task in tasks),
            return_exceptions=True,
        )
        if len(raw_results) != len(tasks):
            raise OrchestratorError(
                f"Fan-out returned {len(raw_results)} result(s) for {len(tasks)} task(s)."
            )

        outcomes: list[TaskOutcome] = []
        for task, result in zip(tasks, raw_results, strict=True):
            if isinstance(result, BaseException):
                outcomes.append(self._crashed_outcome(task, result, started))
            else:
                outcomes.append(result)

        stats = BatchStats.from_outcomes(outcomes, _elapsed_ms(started))
        logger.info(
            "%s",
            stats.format_batch_report(),
            extra={
                "event": events.BATCH_COMPLETED,
                "total": stats.total,
                "successes": stats.successes,
                "failures": stats.failures,
                "duration_ms": stats.duration_ms,
            },
        )
        return outcomes
