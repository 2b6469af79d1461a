"""Per-attempt timeout management for provider calls."""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar
from dataclasses import dataclass
import logging

from .exceptions import OperationTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class TimeoutConfig:
    """Configuration for timeout behavior."""
    attempt_timeout: Optional[float] = 60.0  # Seconds per attempt; None disables


class TimeoutManager:
    """Bounds a single provider attempt so an unresponsive transport cannot block forever."""

    def __init__(self, service_name: str = "azure_devops", config: Optional[TimeoutConfig] = None):
        self.service_name = service_name
        self.config = config or TimeoutConfig()

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Execute an operation with timeout protection.

        Raises:
            OperationTimeoutError: If the attempt does not finish in time
        """
        timeout = self.config.attempt_timeout
        if timeout is None:
            return await operation()

        try:
            return await asyncio.wait_for(operation(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(
                f"Service '{self.service_name}' call timed out after {timeout}s"
            )
            raise OperationTimeoutError(self.service_name, timeout)
