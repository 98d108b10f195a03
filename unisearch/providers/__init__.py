"""Provider adapter contract and the generic HTTP adapter."""

from unisearch.providers.base import BaseSearchAdapter
from unisearch.providers.http_adapter import HttpSearchAdapter

__all__ = ["BaseSearchAdapter", "HttpSearchAdapter"]
