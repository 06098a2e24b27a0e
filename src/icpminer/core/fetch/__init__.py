"""Fetch utilities - retries for provider calls."""

from .retries import RetryConfig, retry_async

__all__ = [
    "RetryConfig",
    "retry_async",
]
