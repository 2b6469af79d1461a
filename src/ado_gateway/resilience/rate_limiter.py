"""Token bucket rate limiting for Azure DevOps calls."""

import asyncio
import math
import time
from typing import Dict, Optional
from dataclasses import dataclass
import logging

from .cancellation import CancellationToken, cancellable_sleep

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting."""
    capacity: int = 100        # Maximum burst of tokens
    refill_rate: float = 10.0  # Tokens added per second

    def __post_init__(self):
        if self.capacity < 1:
            raise ValueError("capacity must be at least 1")
        if self.refill_rate <= 0:
            raise ValueError("refill_rate must be positive")


class RateLimiter:
    """
    Token bucket admission gate shared by every facade of one client.

    ``acquire`` never fails; it only delays the caller until a token is
    available. A caller that had to wait consumes the fractional token it
    was missing and leaves the bucket at zero.
    """

    def __init__(self, config: Optional[RateLimitConfig] = None):
        self.config = config or RateLimitConfig()
        self.tokens = float(self.config.capacity)
        self.last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        time_elapsed = now - self.last_refill
        tokens_to_add = time_elapsed * self.config.refill_rate
        self.tokens = min(float(self.config.capacity), self.tokens + tokens_to_add)
        self.last_refill = now

    async def acquire(self, token: Optional[CancellationToken] = None) -> None:
        """
        Take one token, waiting for the bucket to refill if it is empty.

        Args:
            token: Optional cancellation token; the context-bound token is
                used when omitted

        Raises:
            OperationCancelledError: If cancellation fires while waiting
        """
        async with self._lock:
            self._refill()

            if self.tokens >= 1:
                self.tokens -= 1
                return

            wait_time = (1 - self.tokens) / self.config.refill_rate
            logger.debug(f"Rate limit reached, waiting {wait_time:.3f}s for a token")
            await cancellable_sleep(wait_time, token)
            self.tokens = 0.0

    def get_available_tokens(self) -> int:
        """Whole tokens currently available, after a lazy refill."""
        self._refill()
        return math.floor(self.tokens)

    def reset(self) -> None:
        """Restore the bucket to full capacity."""
        self.tokens = float(self.config.capacity)
        self.last_refill = time.monotonic()
        logger.info("Rate limiter reset to full capacity")

    def get_stats(self) -> Dict[str, float]:
        """Get rate limiter statistics."""
        return {
            "available_tokens": self.get_available_tokens(),
            "capacity": self.config.capacity,
            "refill_rate": self.config.refill_rate,
            "last_refill": self.last_refill,
        }
