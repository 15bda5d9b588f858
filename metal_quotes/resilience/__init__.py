"""Resilience patterns for upstream calls.

This module contains:
- Retry with exponential backoff over any async operation
"""

from metal_quotes.resilience.retry import (
    DEFAULT_BASE_DELAY,
    DEFAULT_MAX_ATTEMPTS,
    RetryConfig,
    retry_with_backoff,
    retry_with_config,
)

__all__ = [
    "DEFAULT_BASE_DELAY",
    "DEFAULT_MAX_ATTEMPTS",
    "RetryConfig",
    "retry_with_backoff",
    "retry_with_config",
]
