"""Combined configuration for the resilient call chain."""

from dataclasses import dataclass, field

from .circuit_breaker import CircuitBreakerConfig
from .rate_limiter import RateLimitConfig
from .retry import RetryConfig
from .timeout import TimeoutConfig


@dataclass
class ResilienceConfig:
    """Combined configuration for all resilience patterns."""
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
