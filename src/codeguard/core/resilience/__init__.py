"""Resilience primitives: circuit breaker and retry with backoff."""

from codeguard.core.errors import CircuitState
from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOptions,
    CircuitBreakerRegistry,
    CircuitBreakerStats,
)
from .retry import RetryResult, calculate_backoff_delay, is_retryable_error, run_with_retry

__all__ = [
    "CircuitState",
    "CircuitBreaker",
    "CircuitBreakerOptions",
    "CircuitBreakerRegistry",
    "CircuitBreakerStats",
    "RetryResult",
    "calculate_backoff_delay",
    "is_retryable_error",
    "run_with_retry",
]
