"""
Resilience patterns for the session manager.

This package provides bounded retry with exponential backoff for
operations against the remote cache store.
"""

from resilience.retry import (
    RetryConfig,
    RetryExhaustedException,
    calculate_delay,
    retry_call,
)

__all__ = [
    "RetryConfig",
    "RetryExhaustedException",
    "calculate_delay",
    "retry_call",
]
