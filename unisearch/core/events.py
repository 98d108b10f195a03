"""Structured log event names emitted by the search core.

Every observable transition is logged with ``extra={"event": events.X, ...}``.
In ``LOG_FORMAT=json`` mode the event name and its fields surface under the
``extra`` object of each JSON line, so log queries can filter on them
directly (``extra.event = "batch_completed"``).

Usage example::

    import logging
    from unisearch.core import events

    logger = logging.getLogger(__name__)
    logger.info(
        "Integration call started",
        extra={"event": events.INTEGRATION_CALL_STARTED, "integration": "slack"},
    )
"""

from __future__ import annotations

__all__ = [
    "INTEGRATION_CALL_STARTED",
    "INTEGRATION_CALL_COMPLETED",
    "RETRY_ATTEMPT",
    "BATCH_STARTED",
    "BATCH_COMPLETED",
    "TASK_FAILED",
    "TASK_CRASHED",
]

# ---------------------------------------------------------------------------
# Per-call lifecycle (resilient call executor)
# ---------------------------------------------------------------------------

#: Emitted before the first attempt.  Fields: ``integration``, ``operation``.
INTEGRATION_CALL_STARTED: str = "integration_call_started"

#: Emitted after the final attempt.  Fields: ``integration``, ``operation``,
#: ``success``, ``attempts``, ``duration_ms`` (plus ``error`` on failure).
INTEGRATION_CALL_COMPLETED: str = "integration_call_completed"

#: Emitted before each backoff sleep.  Fields: ``attempt``, ``delay_ms``,
#: ``error``.
RETRY_ATTEMPT: str = "retry_attempt"

# ---------------------------------------------------------------------------
# Batch lifecycle (fan-out orchestrator)
# ---------------------------------------------------------------------------

#: Emitted once per ``execute_all`` call, after the task list is built.
BATCH_STARTED: str = "batch_started"

#: Emitted once per ``execute_all`` call.  Fields: ``total``, ``successes``,
#: ``failures``, ``duration_ms``.
BATCH_COMPLETED: str = "batch_completed"

#: A task's provider call failed terminally; demoted to a failed outcome.
TASK_FAILED: str = "task_failed"

#: A task unit raised past its own guard; converted to a failed outcome.
TASK_CRASHED: str = "task_crashed"
