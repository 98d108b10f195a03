"""Unit tests for the fan-out orchestrator.

Tests cover:
- Outcome count equals the number of connected capabilities.
- Zero connected capabilities returns ``[]`` without error.
- Outcome order equals submission order regardless of completion order.
- Failure isolation for async failures, synchronous raises and hangs.
- Retry budget per task (terminal vs transient errors).
- Health recording, including across batches.
- Crash conversion when a task unit raises past its own guard.
- Batch events and request-id correlation.
- ``BatchStats`` report formatting.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterator
from typing import Any
from unittest.mock import patch

import pytest

from unisearch.core import events
from unisearch.core.exceptions import (
    OrchestratorError,
    ProviderAuthError,
    ProviderNetworkError,
    ProviderRateLimitError,
)
from unisearch.core.logging_config import REQUEST_ID_CTX
from unisearch.core.models import HealthStatus, ProviderCapability, SearchTask, TaskOutcome
from unisearch.orchestrator.fanout import BatchStats, SearchOrchestrator
from unisearch.orchestrator.health import HealthTracker
from unisearch.orchestrator.resilience import RetryConfig, TimeoutConfig
from unisearch.orchestrator.tasks import ProviderBinding, bind_adapters
from unisearch.providers.base import BaseSearchAdapter

_LOGGER = "unisearch.orchestrator.fanout"


class FakeAdapter(BaseSearchAdapter):
    """Scriptable adapter: returns *payload* after *delay*, or raises the next error."""

    def __init__(self, payload: Any = None, *, delay: float = 0.0, errors: list[BaseException] | None = None) -> None:
        self.payload = payload
        self.delay = delay
        self.errors = list(errors or [])
        self.calls = 0
        self.seen_request_ids: list[str] = []

    async def search(self, query: str, limit: int) -> Any:
        self.calls += 1
        self.seen_request_ids.append(REQUEST_ID_CTX.get())
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.errors:
            raise self.errors.pop(0)
        return self.payload


class HangingAdapter(BaseSearchAdapter):
    def __init__(self) -> None:
        self.calls = 0

    async def search(self, query: str, limit: int) -> Any:
        self.calls += 1
        await asyncio.Event().wait()


class SyncThrowingAdapter(BaseSearchAdapter):
    """``search`` raises before returning an awaitable."""

    def __init__(self) -> None:
        self.calls = 0

    def search(self, query: str, limit: int) -> Any:  # type: ignore[override]
        self.calls += 1
        raise RuntimeError("adapter blew up synchronously")


def _cap(key: str) -> ProviderCapability:
    return ProviderCapability.from_key(key)


def _bindings(adapters: dict[str, BaseSearchAdapter | None]) -> list[ProviderBinding]:
    return [ProviderBinding(_cap(key), adapter, 5) for key, adapter in adapters.items()]


@pytest.fixture()
def orchestrator() -> SearchOrchestrator:
    """Orchestrator with a short deadline and zero backoff."""
    return SearchOrchestrator(
        timeout_config=TimeoutConfig(timeout_s=0.2),
        retry_config=RetryConfig(max_attempts=2, base_delay_s=0.0, max_delay_s=0.0),
    )


# ---------------------------------------------------------------------------
# Shape of the result
# ---------------------------------------------------------------------------


class TestOutcomeShape:
    async def test_one_outcome_per_connected_capability(self, orchestrator: SearchOrchestrator) -> None:
        adapters = {
            "google.gmail": FakeAdapter(["mail"]),
            "google.drive": FakeAdapter(["file"]),
            "slack.messages": FakeAdapter(["msg"]),
        }
        outcomes = await orchestrator.execute_all(bind_adapters(adapters), "kickoff")
        assert len(outcomes) == 3
        assert all(o.success for o in outcomes)

    async def test_nothing_connected_returns_empty(
        self, orchestrator: SearchOrchestrator, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.INFO, logger=_LOGGER):
            outcomes = await orchestrator.execute_all(bind_adapters({}), "anything")
        assert outcomes == []
        assert len(orchestrator.health) == 0
        assert not [r for r in caplog.records if getattr(r, "event", None) == events.BATCH_COMPLETED]

    async def test_empty_bindings_returns_empty(self, orchestrator: SearchOrchestrator) -> None:
        assert await orchestrator.execute_all([], "q") == []

    async def test_order_matches_submission_not_completion(self, orchestrator: SearchOrchestrator) -> None:
        adapters = {
            "custom.slow": FakeAdapter("slow", delay=0.06),
            "custom.medium": FakeAdapter("medium", delay=0.03),
            "custom.fast": FakeAdapter("fast"),
        }
        outcomes = await orchestrator.execute_all(_bindings(adapters), "q")
        assert [o.key for o in outcomes] == ["custom.slow", "custom.medium", "custom.fast"]
        assert [o.data for o in outcomes] == ["slow", "medium", "fast"]

    async def test_tasks_run_concurrently(self, orchestrator: SearchOrchestrator) -> None:
        adapters = {f"custom.s{i}": FakeAdapter(i, delay=0.05) for i in range(5)}
        started = time.monotonic()
        await orchestrator.execute_all(_bindings(adapters), "q")
        assert time.monotonic() - started < 0.2

    async def test_payload_is_passed_through_untouched(self, orchestrator: SearchOrchestrator) -> None:
        payload = {"value": [{"subject": "RFI 12"}], "@odata.nextLink": "x"}
        outcomes = await orchestrator.execute_all(
            _bindings({"microsoft.outlook": FakeAdapter(payload)}), "RFI"
        )
        assert outcomes[0].data is payload


# ---------------------------------------------------------------------------
# Failure isolation
# ---------------------------------------------------------------------------


class TestFailureIsolation:
    async def test_one_failure_does_not_affect_others(self, orchestrator: SearchOrchestrator) -> None:
        adapters = {
            "google.gmail": FakeAdapter(["ok"]),
            "google.drive": FakeAdapter(errors=[ProviderAuthError("google.drive", "revoked", status_code=401)]),
            "slack.messages": FakeAdapter(["ok"]),
        }
        outcomes = await orchestrator.execute_all(_bindings(adapters), "q")

        assert [o.success for o in outcomes] == [True, False, True]
        failed = outcomes[1]
        assert failed.data is None
        assert failed.error == "[google.drive] revoked"
        assert failed.duration_ms >= 0

    async def test_sync_throw_is_isolated(self, orchestrator: SearchOrchestrator) -> None:
        thrower = SyncThrowingAdapter()
        adapters = {"asana.tasks": thrower, "procore.rfis": FakeAdapter(["rfi"])}
        outcomes = await orchestrator.execute_all(_bindings(adapters), "q")

        assert outcomes[0].success is False
        assert "blew up synchronously" in (outcomes[0].error or "")
        assert outcomes[1].success is True
        assert thrower.calls == 1

    async def test_messageless_error_reports_type_name(self, orchestrator: SearchOrchestrator) -> None:
        adapters = {"google.sheets": FakeAdapter(errors=[RuntimeError()])}
        outcomes = await orchestrator.execute_all(_bindings(adapters), "q")
        assert outcomes[0].success is False
        assert outcomes[0].error == "RuntimeError"

    async def test_hanging_provider_bounded_by_timeout(self) -> None:
        orchestrator = SearchOrchestrator(
            timeout_config=TimeoutConfig(timeout_s=0.05),
            retry_config=RetryConfig(max_attempts=2, base_delay_s=0.0, max_delay_s=0.0),
        )
        hanging = HangingAdapter()
        adapters = {"quickbooks.items": hanging, "google.people": FakeAdapter(["person"])}

        started = time.monotonic()
        outcomes = await orchestrator.execute_all(_bindings(adapters), "q")
        elapsed = time.monotonic() - started

        assert elapsed < 1.0
        assert hanging.calls == 2
        assert outcomes[0].success is False
        assert "timed out after 50ms" in (outcomes[0].error or "")
        assert outcomes[1].success is True

    async def test_all_failing_still_returns_outcomes(self, orchestrator: SearchOrchestrator) -> None:
        adapters = {
            f"custom.s{i}": FakeAdapter(errors=[ProviderAuthError("x", "no")]) for i in range(4)
        }
        outcomes = await orchestrator.execute_all(_bindings(adapters), "q")
        assert len(outcomes) == 4
        assert not any(o.success for o in outcomes)


# ---------------------------------------------------------------------------
# Retry budget per task
# ---------------------------------------------------------------------------


class TestRetryBudget:
    async def test_non_retryable_single_attempt(self, orchestrator: SearchOrchestrator) -> None:
        adapter = FakeAdapter(errors=[ProviderAuthError("g", "expired", status_code=401)] * 5)
        await orchestrator.execute_all(_bindings({"google.calendar": adapter}), "q")
        assert adapter.calls == 1

    async def test_retryable_recovers_on_second_attempt(self, orchestrator: SearchOrchestrator) -> None:
        adapter = FakeAdapter(["ok"], errors=[ProviderNetworkError("s", "reset")])
        outcomes = await orchestrator.execute_all(_bindings({"slack.messages": adapter}), "q")
        assert outcomes[0].success is True
        assert outcomes[0].data == ["ok"]
        assert adapter.calls == 2

    async def test_success_after_budget_is_never_reached(self, orchestrator: SearchOrchestrator) -> None:
        adapter = FakeAdapter(
            ["late"],
            errors=[ProviderNetworkError("s", "reset"), ProviderNetworkError("s", "reset")],
        )
        outcomes = await orchestrator.execute_all(_bindings({"slack.messages": adapter}), "q")
        assert outcomes[0].success is False
        assert outcomes[0].data is None
        assert adapter.calls == 2

    async def test_retryable_budget_exhausted(self, orchestrator: SearchOrchestrator) -> None:
        adapter = FakeAdapter(errors=[ProviderRateLimitError("s")] * 5)
        outcomes = await orchestrator.execute_all(_bindings({"slack.messages": adapter}), "q")
        assert outcomes[0].success is False
        assert adapter.calls == 2


# ---------------------------------------------------------------------------
# Health recording
# ---------------------------------------------------------------------------


class TestHealthRecording:
    async def test_each_completed_task_recorded(self, orchestrator: SearchOrchestrator) -> None:
        adapters = {
            "google.gmail": FakeAdapter(["ok"]),
            "google.drive": FakeAdapter(errors=[ProviderAuthError("d", "no")]),
        }
        await orchestrator.execute_all(_bindings(adapters), "q")
        assert orchestrator.health.snapshot() == {
            "google.gmail": HealthStatus.HEALTHY,
            "google.drive": HealthStatus.UNHEALTHY,
        }

    async def test_last_batch_wins(self, orchestrator: SearchOrchestrator) -> None:
        adapter = FakeAdapter(["ok"], errors=[ProviderAuthError("d", "no")])
        bindings = _bindings({"google.drive": adapter})

        await orchestrator.execute_all(bindings, "q")
        assert orchestrator.health.status(_cap("google.drive")) is HealthStatus.UNHEALTHY

        await orchestrator.execute_all(bindings, "q")
        assert orchestrator.health.status(_cap("google.drive")) is HealthStatus.HEALTHY

    async def test_disconnected_capability_not_tracked(self, orchestrator: SearchOrchestrator) -> None:
        await orchestrator.execute_all(bind_adapters({"google.gmail": FakeAdapter(["ok"])}), "q")
        assert list(orchestrator.health.snapshot()) == ["google.gmail"]

    def test_injected_health_store_is_used(self) -> None:
        tracker = HealthTracker()
        assert SearchOrchestrator(health=tracker).health is tracker

    def test_each_orchestrator_owns_its_store(self) -> None:
        assert SearchOrchestrator().health is not SearchOrchestrator().health


# ---------------------------------------------------------------------------
# Crash conversion
# ---------------------------------------------------------------------------


class TestCrashConversion:
    async def test_exception_escaping_task_unit_becomes_failed_outcome(
        self,
        orchestrator: SearchOrchestrator,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        real_run_task = orchestrator._run_task

        async def _run_task(task: SearchTask) -> TaskOutcome:
            if task.capability.key == "custom.bad":
                raise KeyError("bookkeeping slip")
            return await real_run_task(task)

        monkeypatch.setattr(orchestrator, "_run_task", _run_task)
        adapters = {"custom.good": FakeAdapter("g"), "custom.bad": FakeAdapter("b")}

        with caplog.at_level(logging.ERROR, logger=_LOGGER):
            outcomes = await orchestrator.execute_all(_bindings(adapters), "q")

        assert outcomes[0].success is True
        assert outcomes[1].success is False
        assert "bookkeeping slip" in (outcomes[1].error or "")
        assert orchestrator.health.status(_cap("custom.bad")) is HealthStatus.UNHEALTHY
        crashed = [r for r in caplog.records if getattr(r, "event", None) == events.TASK_CRASHED]
        assert len(crashed) == 1

    async def test_result_count_mismatch_is_fatal(self, orchestrator: SearchOrchestrator) -> None:
        async def _drop_all(*coros: Any, return_exceptions: bool = False) -> list[Any]:
            for coro in coros:
                coro.close()
            return []

        with (
            patch("unisearch.orchestrator.fanout.asyncio.gather", new=_drop_all),
            pytest.raises(OrchestratorError, match="0 result"),
        ):
            await orchestrator.execute_all(_bindings({"custom.a": FakeAdapter(1)}), "q")


# ---------------------------------------------------------------------------
# Observability
# ---------------------------------------------------------------------------


class TestBatchEvents:
    async def test_batch_completed_event_fields(
        self, orchestrator: SearchOrchestrator, caplog: pytest.LogCaptureFixture
    ) -> None:
        adapters = {
            "google.gmail": FakeAdapter(["ok"]),
            "google.drive": FakeAdapter(errors=[ProviderAuthError("d", "no")]),
        }
        with caplog.at_level(logging.INFO, logger=_LOGGER):
            await orchestrator.execute_all(_bindings(adapters), "q")

        started = [r for r in caplog.records if getattr(r, "event", None) == events.BATCH_STARTED]
        completed = [r for r in caplog.records if getattr(r, "event", None) == events.BATCH_COMPLETED]
        assert len(started) == 1
        assert started[0].total == 2
        assert len(completed) == 1
        rec = completed[0]
        assert (rec.total, rec.successes, rec.failures) == (2, 1, 1)
        assert rec.duration_ms >= 0

    async def test_task_failed_event(
        self, orchestrator: SearchOrchestrator, caplog: pytest.LogCaptureFixture
    ) -> None:
        adapters = {"procore.documents": FakeAdapter(errors=[ProviderAuthError("p", "denied")])}
        with caplog.at_level(logging.WARNING, logger=_LOGGER):
            await orchestrator.execute_all(_bindings(adapters), "q")

        failed = [r for r in caplog.records if getattr(r, "event", None) == events.TASK_FAILED]
        assert len(failed) == 1
        assert failed[0].integration == "procore"
        assert failed[0].service == "documents"
        assert failed[0].levelno == logging.WARNING


class TestRequestId:
    async def test_supplied_request_id_visible_to_tasks(self, orchestrator: SearchOrchestrator) -> None:
        a, b = FakeAdapter(1), FakeAdapter(2)
        await orchestrator.execute_all(_bindings({"custom.a": a, "custom.b": b}), "q", request_id="req-42")
        assert a.seen_request_ids == ["req-42"]
        assert b.seen_request_ids == ["req-42"]

    async def test_generated_request_id_is_8_char_hex(self, orchestrator: SearchOrchestrator) -> None:
        adapter = FakeAdapter(1)
        await orchestrator.execute_all(_bindings({"custom.a": adapter}), "q")
        rid = adapter.seen_request_ids[0]
        assert len(rid) == 8
        int(rid, 16)

    async def test_request_id_reset_after_batch(self, orchestrator: SearchOrchestrator) -> None:
        await orchestrator.execute_all(_bindings({"custom.a": FakeAdapter(1)}), "q", request_id="abc")
        assert REQUEST_ID_CTX.get() == "-"

    async def test_request_id_reset_even_on_exception(self, orchestrator: SearchOrchestrator) -> None:
        def _broken_bindings() -> Iterator[ProviderBinding]:
            yield ProviderBinding(_cap("custom.a"), FakeAdapter(1), 5)
            raise RuntimeError("binding source failed")

        with pytest.raises(RuntimeError, match="binding source failed"):
            await orchestrator.execute_all(_broken_bindings(), "q", request_id="x")
        assert REQUEST_ID_CTX.get() == "-"


# ---------------------------------------------------------------------------
# BatchStats
# ---------------------------------------------------------------------------


class TestBatchStats:
    def _outcome(self, key: str, success: bool) -> TaskOutcome:
        return TaskOutcome(
            capability=_cap(key),
            success=success,
            duration_ms=1.0,
            error=None if success else "boom",
        )

    def test_counts(self) -> None:
        stats = BatchStats.from_outcomes(
            [self._outcome("a.x", True), self._outcome("b.y", False), self._outcome("c.z", False)],
            duration_ms=123.4,
        )
        assert stats.total == 3
        assert stats.successes == 1
        assert stats.failures == 2
        assert stats.failed_capabilities == ["b.y", "c.z"]

    def test_report_lists_failures(self) -> None:
        stats = BatchStats.from_outcomes(
            [self._outcome("a.x", True), self._outcome("b.y", False)], duration_ms=50.0
        )
        report = stats.format_batch_report()
        assert "tasks=2" in report
        assert "ok=1" in report
        assert "failed=1" in report
        assert "50 ms" in report
        assert "failed: b.y" in report

    def test_report_without_failures(self) -> None:
        stats = BatchStats.from_outcomes([self._outcome("a.x", True)])
        assert "failed:" not in stats.format_batch_report()
