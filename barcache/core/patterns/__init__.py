"""Resilience patterns."""

from barcache.core.patterns.retry import ExponentialBackoffRetry, RetryConfig, RetryState, Sleeper

__all__ = ["ExponentialBackoffRetry", "RetryConfig", "RetryState", "Sleeper"]
