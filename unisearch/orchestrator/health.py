"""Per-capability health tracking.

The tracker records the outcome of the most recent completed task for each
capability:

* **Last write wins.**  A single failure flips a capability to
  ``unhealthy``; the next success flips it back.  No windowing, decay or
  hysteresis.
* **Lazy entries.**  A capability appears only after its first task has
  completed, so "never attempted" and "healthy" stay distinguishable.
* **Visibility only.**  Nothing in the search core routes around or backs
  off from unhealthy capabilities.

Thread-safety
~~~~~~~~~~~~~
Writes and reads take a single coarse :class:`threading.Lock`.  One tracker
can therefore be shared by concurrent batches on one event loop and by
batches running on different threads.  Contention is negligible because
every critical section is a dict operation.

Typical usage::

    from unisearch.orchestrator.health import HealthTracker

    health = HealthTracker()
    health.record_outcome(capability, healthy=False)
    health.summary().overall   # HealthStatus.UNHEALTHY
"""

from __future__ import annotations

import logging
import threading

from unisearch.core.models import HealthStatus, HealthSummary, ProviderCapability

__all__ = ["HealthTracker"]

logger = logging.getLogger(__name__)


class HealthTracker:
    """In-memory map from capability key to its last observed status.

    Scoped to the owning orchestrator instance, which normally lives for the
    whole process.  Nothing is persisted.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._statuses: dict[str, HealthStatus] = {}

    def record_outcome(self, capability: ProviderCapability, healthy: bool) -> None:
        """Overwrite the status of *capability* with the latest outcome.

        Args:
            capability: Capability whose task just completed.
            healthy: ``True`` if the task succeeded.
        """
        status = HealthStatus.HEALTHY if healthy else HealthStatus.UNHEALTHY
        with self._lock:
            previous = self._statuses.get(capability.key)
            self._statuses[capability.key] = status

        if previous is not None and previous != status:
            logger.info(
                "Capability %s health changed: %s -> %s",
                capability.key,
                previous,
                status,
            )

    def status(self, capability: ProviderCapability) -> HealthStatus | None:
        """Return the status of *capability*, or ``None`` if never completed."""
        with self._lock:
            return self._statuses.get(capability.key)

    def snapshot(self) -> dict[str, HealthStatus]:
        """Return a point-in-time copy of ``{capability_key: status}``."""
        with self._lock:
            return dict(self._statuses)

    def summary(self) -> HealthSummary:
        """Aggregate the current snapshot.

        ``overall`` is ``unhealthy`` as soon as any capability is unhealthy,
        ``healthy`` otherwise (including when nothing has been tracked yet).
        """
        statuses = list(self.snapshot().values())
        healthy = sum(1 for s in statuses if s is HealthStatus.HEALTHY)
        unhealthy = sum(1 for s in statuses if s is HealthStatus.UNHEALTHY)
        return HealthSummary(
            total=len(statuses),
            healthy_count=healthy,
            unhealthy_count=unhealthy,
            overall=HealthStatus.UNHEALTHY if unhealthy else HealthStatus.HEALTHY,
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._statuses)
