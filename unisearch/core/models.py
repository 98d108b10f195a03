"""Unisearch core data model.

Defines the types that flow between the task builder, the fan-out
orchestrator, the resilience layer and the health tracker.

Typical usage::

    from unisearch.core.models import ProviderCapability, TaskOutcome

    gmail = ProviderCapability(integration="google", service="gmail")
    assert gmail.key == "google.gmail"

    outcome = TaskOutcome(capability=gmail, success=True, data=[...], duration_ms=412.0)
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator

__all__ = [
    "CAPABILITY_KEY_SEPARATOR",
    "ProviderCapability",
    "SearchTask",
    "TaskOutcome",
    "RetryOutcome",
    "HealthStatus",
    "HealthSummary",
]

#: Separator between integration and service in a capability key.
CAPABILITY_KEY_SEPARATOR: str = "."


# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------


class ProviderCapability(BaseModel):
    """One searchable unit within a provider, e.g. ``("google", "gmail")``.

    The model is frozen so instances are hashable and stable for the lifetime
    of the process.  :attr:`key` is the string used by the health tracker.

    Attributes:
        integration: Provider name (``"google"``, ``"slack"``, ...).  Must not
            contain the key separator.
        service: Capability within the provider (``"gmail"``, ``"rfis"``, ...).
    """

    model_config = {"frozen": True}

    integration: str = Field(..., min_length=1)
    service: str = Field(..., min_length=1)

    @field_validator("integration", "service", mode="before")
    @classmethod
    def _strip(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("integration")
    @classmethod
    def _no_separator(cls, v: str) -> str:
        if CAPABILITY_KEY_SEPARATOR in v:
            raise ValueError(f"integration must not contain {CAPABILITY_KEY_SEPARATOR!r}: {v!r}")
        return v

    @property
    def key(self) -> str:
        """Return ``"integration.service"``."""
        return f"{self.integration}{CAPABILITY_KEY_SEPARATOR}{self.service}"

    @classmethod
    def from_key(cls, key: str) -> ProviderCapability:
        """Parse ``"integration.service"`` back into a capability.

        Raises:
            ValueError: If *key* has no separator or either side is blank.
        """
        integration, sep, service = key.strip().partition(CAPABILITY_KEY_SEPARATOR)
        if not sep:
            raise ValueError(f"capability key must look like 'integration.service', got {key!r}")
        return cls(integration=integration, service=service)

    def __str__(self) -> str:
        return self.key


# ---------------------------------------------------------------------------
# Tasks and outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SearchTask:
    """A bound, side-effect-free description of one unit of fan-out work.

    ``invoke`` performs the provider call with query and limit already closed
    over.  It normally returns an awaitable; it may also raise synchronously,
    which the orchestrator treats exactly like an asynchronous failure.
    """

    capability: ProviderCapability
    invoke: Callable[[], Awaitable[Any]]


class TaskOutcome(BaseModel):
    """Terminal result of one :class:`SearchTask`.

    Immutable once produced.  ``data`` is the provider-shaped payload and is
    left uninterpreted; the ranking stage decides what to do with it.

    Attributes:
        capability: Which capability the task searched.
        success: ``True`` if the provider call eventually succeeded.
        data: Opaque payload on success, ``None`` on failure.
        duration_ms: Wall-clock time for the task including retries.
        error: Final error message on failure, ``None`` on success.
    """

    model_config = {"frozen": True}

    capability: ProviderCapability
    success: bool
    data: Any = None
    duration_ms: float = Field(..., ge=0)
    error: str | None = None

    @property
    def integration(self) -> str:
        return self.capability.integration

    @property
    def service(self) -> str:
        return self.capability.service

    @property
    def key(self) -> str:
        return self.capability.key


@dataclass(frozen=True)
class RetryOutcome:
    """Result of :func:`~unisearch.orchestrator.resilience.with_retry`.

    Internal to the resilience layer; never handed to the orchestrator's
    callers.
    """

    success: bool
    attempts: int
    elapsed_ms: float
    data: Any = None
    error: BaseException | None = None


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthStatus(StrEnum):
    """Last observed status of a capability."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    """Reserved; the tracker currently only sets healthy / unhealthy."""
    UNHEALTHY = "unhealthy"


class HealthSummary(BaseModel):
    """Point-in-time aggregate over every tracked capability."""

    model_config = {"frozen": True}

    total: int = Field(..., ge=0)
    healthy_count: int = Field(..., ge=0)
    unhealthy_count: int = Field(..., ge=0)
    overall: HealthStatus
