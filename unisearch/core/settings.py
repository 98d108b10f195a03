"""Unisearch application settings loaded from environment and ``.env`` files.

Uses :mod:`pydantic_settings`; each field maps to the upper-case environment
variable of the same name (``search_timeout_s`` → ``SEARCH_TIMEOUT_S``).

Typical usage::

    from unisearch.core.settings import Settings

    settings = Settings()
    timeout_cfg = settings.to_timeout_config()
    retry_cfg = settings.to_retry_config()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Annotated

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

if TYPE_CHECKING:
    from unisearch.orchestrator.resilience import RetryConfig, TimeoutConfig

__all__ = ["Settings"]

logger = logging.getLogger(__name__)


def _parse_endpoints(value: str) -> dict[str, str]:
    """Parse ``"google.gmail=https://a, slack.messages=https://b"``.

    Blank input yields an empty dict.  Items without ``=`` are rejected.
    """
    endpoints: dict[str, str] = {}
    if not value or not value.strip():
        return endpoints
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        key, sep, url = item.partition("=")
        if not sep or not key.strip() or not url.strip():
            raise ValueError(f"provider endpoint must look like 'integration.service=url', got {item!r}")
        endpoints[key.strip()] = url.strip()
    return endpoints


class Settings(BaseSettings):
    """Central configuration for the search core.

    Values are loaded in priority order: environment variables, then
    ``.env`` in the working directory, then field defaults.  The resilience
    defaults match the policy every integration call uses in production:
    8 s per attempt, at most one retry after about a second.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Timeout / retry policy
    # ------------------------------------------------------------------
    search_timeout_s: float = Field(
        default=8.0,
        gt=0.0,
        description="Deadline for a single provider attempt, in seconds.",
    )
    retry_max_attempts: int = Field(
        default=2,
        ge=1,
        description="Total attempts per provider call, including the first.",
    )
    retry_base_delay_s: float = Field(
        default=1.0,
        ge=0.0,
        description="Backoff before the first retry, in seconds.",
    )
    retry_max_delay_s: float = Field(
        default=5.0,
        ge=0.0,
        description="Upper bound on any single backoff sleep, in seconds.",
    )
    retry_backoff_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        description="Factor applied to the backoff after every failed attempt.",
    )

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------
    provider_endpoints: Annotated[dict[str, str], NoDecode] = Field(
        default_factory=dict,
        description="Comma-separated 'integration.service=url' pairs for HTTP adapters.",
    )
    http_connect_timeout_s: float = Field(
        default=5.0,
        gt=0.0,
        description="TCP connect timeout for HTTP adapters.",
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = Field(default="INFO", description="Logging level.")
    log_format: str = Field(default="text", description="Log format: 'text' or 'json'.")

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("provider_endpoints", mode="before")
    @classmethod
    def _parse_provider_endpoints(cls, v: str | dict[str, str]) -> dict[str, str]:
        """Accept the comma-separated env form **or** an already-built dict."""
        if isinstance(v, str):
            return _parse_endpoints(v)
        return v

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got {v!r}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, v: str) -> str:
        allowed = {"text", "json"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"log_format must be one of {allowed}, got {v!r}")
        return v_lower

    @model_validator(mode="after")
    def _validate_backoff_bounds(self) -> Settings:
        """Ensure base delay ≤ max delay."""
        if self.retry_base_delay_s > self.retry_max_delay_s:
            raise ValueError(
                f"retry_base_delay_s ({self.retry_base_delay_s}) "
                f"> retry_max_delay_s ({self.retry_max_delay_s})"
            )
        return self

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    def to_timeout_config(self) -> TimeoutConfig:
        """Build the per-attempt :class:`TimeoutConfig`."""
        from unisearch.orchestrator.resilience import TimeoutConfig  # noqa: PLC0415

        return TimeoutConfig(timeout_s=self.search_timeout_s)

    def to_retry_config(self) -> RetryConfig:
        """Build the :class:`RetryConfig` used for every provider call."""
        from unisearch.orchestrator.resilience import RetryConfig  # noqa: PLC0415

        return RetryConfig(
            max_attempts=self.retry_max_attempts,
            base_delay_s=self.retry_base_delay_s,
            max_delay_s=self.retry_max_delay_s,
            backoff_multiplier=self.retry_backoff_multiplier,
        )
