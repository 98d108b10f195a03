"""Timeout, retry and the resilient call executor for provider calls.

Three layers, composed innermost-first:

1. :func:`with_timeout` bounds a single attempt.  The deadline is enforced
   with :func:`asyncio.timeout`, so an expired attempt is *cancelled*: the
   provider coroutine receives :exc:`asyncio.CancelledError` at its current
   suspension point and its ``async with`` / ``finally`` blocks (closing
   sockets, releasing pooled connections) run before the timeout is reported.
2. :func:`with_retry` re-invokes an operation with capped exponential
   backoff via :mod:`tenacity`, consulting
   :func:`~unisearch.orchestrator.classifier.is_retryable` after each failure.
   It returns a :class:`~unisearch.core.models.RetryOutcome` instead of
   raising.
3. :func:`execute_with_resilience` wraps the raw call as
   ``with_retry(with_timeout(call))`` and emits the ``integration_call_*``
   log events.  Each attempt is separately bounded, and a timed-out attempt
   counts as retryable.

Backoff schedule
~~~~~~~~~~~~~~~~
Before retry *n* (1-based failed attempt number) the engine sleeps::

    min(base_delay_s * backoff_multiplier ** (n - 1), max_delay_s)

With the defaults (2 attempts, 1 s base, 5 s cap, ×2) that is at most one
retry, one second after the first failure.

Typical usage::

    from unisearch.orchestrator.resilience import execute_with_resilience

    data = await execute_with_resilience(
        lambda: adapter.search("invoice 2291", 5),
        "quickbooks",
        "invoices",
    )
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Final, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from unisearch.core import events
from unisearch.core.exceptions import ProviderTimeoutError
from unisearch.core.models import RetryOutcome
from unisearch.orchestrator.classifier import is_retryable

__all__ = [
    "TimeoutConfig",
    "RetryConfig",
    "DEFAULT_TIMEOUT_CONFIG",
    "DEFAULT_RETRY_CONFIG",
    "with_timeout",
    "with_retry",
    "execute_with_resilience",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

#: A zero-argument callable performing one provider call.  Usually returns an
#: awaitable; plain return values and synchronous raises are also accepted.
Operation = Callable[[], Awaitable[T] | T]

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Default per-attempt deadline.
_DEFAULT_TIMEOUT_S: Final[float] = 8.0

#: Default total attempts (1 initial + 1 retry).
_DEFAULT_MAX_ATTEMPTS: Final[int] = 2

#: Default backoff before the first retry.
_DEFAULT_BASE_DELAY_S: Final[float] = 1.0

#: Default hard cap on a single backoff sleep.
_DEFAULT_MAX_DELAY_S: Final[float] = 5.0

#: Default growth factor between consecutive backoff sleeps.
_DEFAULT_BACKOFF_MULTIPLIER: Final[float] = 2.0


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TimeoutConfig:
    """Per-attempt deadline.

    Attributes:
        timeout_s: Seconds a single attempt may run before it is cancelled.
        error_message: Message for the resulting
            :class:`~unisearch.core.exceptions.ProviderTimeoutError`.  When
            ``None`` a message naming the deadline in milliseconds is used.
    """

    timeout_s: float = _DEFAULT_TIMEOUT_S
    error_message: str | None = None

    def __post_init__(self) -> None:
        if self.timeout_s <= 0:
            raise ValueError(f"timeout_s must be > 0, got {self.timeout_s!r}.")

    @property
    def message(self) -> str:
        if self.error_message:
            return self.error_message
        return f"Integration call timed out after {round(self.timeout_s * 1000)}ms"


@dataclass(frozen=True)
class RetryConfig:
    """Retry budget and backoff shape.

    Attributes:
        max_attempts: Total attempts including the first (≥ 1).
        base_delay_s: Sleep before the first retry.
        max_delay_s: Ceiling on any single sleep.
        backoff_multiplier: Growth factor per failed attempt (≥ 1).
        retry_condition: Predicate deciding whether an error is retryable.
            Defaults to :func:`~unisearch.orchestrator.classifier.is_retryable`.
    """

    max_attempts: int = _DEFAULT_MAX_ATTEMPTS
    base_delay_s: float = _DEFAULT_BASE_DELAY_S
    max_delay_s: float = _DEFAULT_MAX_DELAY_S
    backoff_multiplier: float = _DEFAULT_BACKOFF_MULTIPLIER
    retry_condition: Callable[[BaseException], bool] | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be ≥ 1, got {self.max_attempts!r}.")
        if self.base_delay_s < 0 or self.max_delay_s < 0:
            raise ValueError("backoff delays must be ≥ 0.")
        if self.max_delay_s < self.base_delay_s:
            raise ValueError(
                f"max_delay_s ({self.max_delay_s}) < base_delay_s ({self.base_delay_s})."
            )
        if self.backoff_multiplier < 1:
            raise ValueError(
                f"backoff_multiplier must be ≥ 1, got {self.backoff_multiplier!r}."
            )

    def delay_for(self, attempt: int) -> float:
        """Backoff in seconds after failed attempt number *attempt* (1-based)."""
        exponent = max(attempt - 1, 0)
        return min(self.base_delay_s * self.backoff_multiplier**exponent, self.max_delay_s)


DEFAULT_TIMEOUT_CONFIG: Final[TimeoutConfig] = TimeoutConfig()
DEFAULT_RETRY_CONFIG: Final[RetryConfig] = RetryConfig()


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 1)


async def _invoke(operation: Operation[T]) -> T:
    """Call *operation* and await its result if it is awaitable."""
    result = operation()
    if inspect.isawaitable(result):
        return await result
    return result


# ---------------------------------------------------------------------------
# Timeout wrapper
# ---------------------------------------------------------------------------


async def with_timeout(
    operation: Operation[T],
    config: TimeoutConfig = DEFAULT_TIMEOUT_CONFIG,
    *,
    provider: str = "integration",
) -> T:
    """Run one attempt of *operation*, cancelling it at the deadline.

    Args:
        operation: Zero-argument callable performing the call.
        config: Deadline settings.
        provider: Label used in the timeout error (capability key).

    Returns:
        Whatever *operation* produced.

    Raises:
        ProviderTimeoutError: The deadline expired; the attempt was cancelled.
        Exception: Anything *operation* itself raised, unchanged.
    """
    deadline = asyncio.timeout(config.timeout_s)
    try:
        async with deadline:
            return await _invoke(operation)
    except TimeoutError as exc:
        if not deadline.expired():
            raise
        raise ProviderTimeoutError(provider, config.message) from exc


# ---------------------------------------------------------------------------
# Retry engine
# ---------------------------------------------------------------------------


async def with_retry(
    operation: Operation[T],
    config: RetryConfig = DEFAULT_RETRY_CONFIG,
) -> RetryOutcome:
    """Invoke *operation* until it succeeds, fails terminally, or runs out of attempts.

    Operation failures never propagate; they are reported in the returned
    :class:`~unisearch.core.models.RetryOutcome` together with the number of
    attempts used and the elapsed wall-clock time.  Cancellation of the
    calling task does propagate.

    Args:
        operation: Zero-argument callable performing one attempt.
        config: Retry budget, backoff shape and retry predicate.

    Returns:
        A :class:`~unisearch.core.models.RetryOutcome`.
    """
    condition = config.retry_condition or is_retryable
    started = time.monotonic()
    attempts = 0

    def _before_sleep(rs: RetryCallState) -> None:
        exc = rs.outcome.exception() if rs.outcome else None
        delay_s = rs.next_action.sleep if rs.next_action else 0.0
        logger.warning(
            "Retry attempt %d/%d failed, retrying in %.0f ms: %s",
            rs.attempt_number,
            config.max_attempts,
            delay_s * 1000,
            exc,
            extra={
                "event": events.RETRY_ATTEMPT,
                "attempt": rs.attempt_number,
                "max_attempts": config.max_attempts,
                "delay_ms": round(delay_s * 1000, 1),
                "error": str(exc),
            },
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.base_delay_s,
            exp_base=config.backoff_multiplier,
            max=config.max_delay_s,
        ),
        retry=retry_if_exception(condition),
        before_sleep=_before_sleep,
        reraise=True,
    )

    data: Any = None
    try:
        async for attempt in retrying:
            with attempt:
                attempts = attempt.retry_state.attempt_number
                data = await _invoke(operation)
    except Exception as exc:  # noqa: BLE001
        return RetryOutcome(
            success=False,
            attempts=attempts,
            elapsed_ms=_elapsed_ms(started),
            error=exc,
        )

    return RetryOutcome(
        success=True,
        attempts=attempts,
        elapsed_ms=_elapsed_ms(started),
        data=data,
    )


# ---------------------------------------------------------------------------
# Resilient call executor
# ---------------------------------------------------------------------------


async def execute_with_resilience(
    operation: Operation[T],
    integration: str,
    operation_name: str,
    timeout_config: TimeoutConfig = DEFAULT_TIMEOUT_CONFIG,
    retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
) -> T:
    """Run one provider call under the timeout and retry policies.

    Emits ``integration_call_started`` before the first attempt and
    ``integration_call_completed`` after the final outcome.  These two
    records are the operability surface for every provider call.

    Args:
        operation: Zero-argument callable performing the provider call.
        integration: Provider name for logs (e.g. ``"google"``).
        operation_name: Capability / operation name for logs (e.g. ``"gmail"``).
        timeout_config: Per-attempt deadline.
        retry_config: Retry budget and backoff.

    Returns:
        The provider payload from the successful attempt.

    Raises:
        Exception: The final error when attempts are exhausted or the error
            is not retryable.
    """
    started = time.monotonic()
    label = f"{integration}.{operation_name}"

    logger.info(
        "Integration call started: %s",
        label,
        extra={
            "event": events.INTEGRATION_CALL_STARTED,
            "integration": integration,
            "operation": operation_name,
        },
    )

    outcome = await with_retry(
        lambda: with_timeout(operation, timeout_config, provider=label),
        retry_config,
    )
    duration_ms = _elapsed_ms(started)

    if outcome.success:
        logger.info(
            "Integration call completed: %s ok in %.0f ms (attempts=%d)",
            label,
            duration_ms,
            outcome.attempts,
            extra={
                "event": events.INTEGRATION_CALL_COMPLETED,
                "integration": integration,
                "operation": operation_name,
                "success": True,
                "attempts": outcome.attempts,
                "duration_ms": duration_ms,
            },
        )
        return outcome.data

    error = outcome.error
    logger.warning(
        "Integration call completed: %s failed in %.0f ms (attempts=%d): %s",
        label,
        duration_ms,
        outcome.attempts,
        error,
        extra={
            "event": events.INTEGRATION_CALL_COMPLETED,
            "integration": integration,
            "operation": operation_name,
            "success": False,
            "attempts": outcome.attempts,
            "duration_ms": duration_ms,
            "error": str(error),
        },
    )
    assert error is not None  # noqa: S101
    raise error
