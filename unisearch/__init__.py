"""Unisearch: fan-out search across every connected workplace integration."""

__version__ = "0.1.0"
