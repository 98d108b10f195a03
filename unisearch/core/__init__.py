"""Core domain models, settings, logging configuration, and exceptions."""

from unisearch.core.exceptions import (
    ConfigError,
    ErrorKind,
    OrchestratorError,
    ProviderAuthError,
    ProviderError,
    ProviderNetworkError,
    ProviderNotFoundError,
    ProviderParseError,
    ProviderRateLimitError,
    ProviderServerError,
    ProviderTimeoutError,
    UnisearchError,
)
from unisearch.core.logging_config import JsonFormatter, configure_logging
from unisearch.core.models import (
    HealthStatus,
    HealthSummary,
    ProviderCapability,
    SearchTask,
    TaskOutcome,
)
from unisearch.core.settings import Settings

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    # Domain models
    "ProviderCapability",
    "SearchTask",
    "TaskOutcome",
    "HealthStatus",
    "HealthSummary",
    # Settings
    "Settings",
    # Exceptions
    "UnisearchError",
    "ConfigError",
    "ErrorKind",
    "ProviderError",
    "ProviderRateLimitError",
    "ProviderAuthError",
    "ProviderNotFoundError",
    "ProviderServerError",
    "ProviderNetworkError",
    "ProviderTimeoutError",
    "ProviderParseError",
    "OrchestratorError",
]
