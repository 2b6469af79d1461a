"""
Resilience patterns for Azure DevOps calls.

This package provides the token bucket rate limiter, retry policy, circuit
breaker, per-attempt timeout and cooperative cancellation that make up the
resilient call chain shared by every facade.
"""

from .cancellation import CancellationToken, cancellation_scope, current_token
from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerState
from .config import ResilienceConfig
from .rate_limiter import RateLimitConfig, RateLimiter
from .retry import RetryConfig, RetryPolicy
from .timeout import TimeoutConfig, TimeoutManager
from .exceptions import (
    ResilienceError,
    CircuitBreakerOpenError,
    RetryExhaustedError,
    OperationTimeoutError,
    OperationCancelledError,
)

__all__ = [
    "CancellationToken",
    "cancellation_scope",
    "current_token",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerState",
    "ResilienceConfig",
    "RateLimitConfig",
    "RateLimiter",
    "RetryConfig",
    "RetryPolicy",
    "TimeoutConfig",
    "TimeoutManager",
    "ResilienceError",
    "CircuitBreakerOpenError",
    "RetryExhaustedError",
    "OperationTimeoutError",
    "OperationCancelledError",
]
