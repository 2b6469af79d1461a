"""Retry logic with exponential backoff and jitter."""

import random
from typing import Awaitable, Callable, Optional, TypeVar
from dataclasses import dataclass
import logging

from ado_gateway.exceptions import ErrorKind, classify_error, status_code_of
from .cancellation import CancellationToken, cancellable_sleep
from .exceptions import RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    base_delay: float = 1.0  # Base delay in seconds
    max_jitter: float = 1.0  # Upper bound of the random jitter in seconds

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")


class RetryPolicy:
    """
    Retries an operation while it fails with a transient error.

    Only errors classified as transient (HTTP 429, 503, 504 or an attempt
    timeout) are retried; any other error is re-raised on the spot. The
    delay between attempts grows as ``base_delay * 2 ** attempt`` plus
    uniform jitter and is not capped.
    """

    def __init__(self, service_name: str = "azure_devops", config: Optional[RetryConfig] = None):
        self.service_name = service_name
        self.config = config or RetryConfig()

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        token: Optional[CancellationToken] = None,
    ) -> T:
        """
        Execute an operation with retry logic.

        Args:
            operation: Zero-argument callable returning an awaitable
            token: Optional cancellation token observed during the delays

        Returns:
            The result of the first successful attempt

        Raises:
            Exception: The last error once attempts are exhausted, or the
                first non-retryable error
        """
        last_exception: Optional[BaseException] = None

        for attempt in range(self.config.max_attempts):
            try:
                logger.debug(
                    f"Attempting call to service '{self.service_name}' "
                    f"(attempt {attempt + 1}/{self.config.max_attempts})"
                )
                result = await operation()

                if attempt > 0:
                    logger.info(
                        f"Service '{self.service_name}' call succeeded on attempt {attempt + 1}"
                    )
                return result

            except Exception as e:
                last_exception = e

                if classify_error(e) is not ErrorKind.TRANSIENT:
                    logger.debug(
                        f"Non-retryable exception for service '{self.service_name}': {type(e).__name__}"
                    )
                    raise

                # Don't sleep after the last attempt
                if attempt < self.config.max_attempts - 1:
                    delay = self.calculate_delay(attempt)
                    logger.warning(
                        f"Service '{self.service_name}' call failed on attempt {attempt + 1} "
                        f"(status {status_code_of(e)}): {e}. Retrying in {delay:.2f}s..."
                    )
                    await cancellable_sleep(delay, token)
                else:
                    logger.error(
                        f"Service '{self.service_name}' call failed on final attempt {attempt + 1}: {e}"
                    )

        if last_exception is not None:
            raise last_exception
        raise RetryExhaustedError(self.service_name, self.config.max_attempts)

    def calculate_delay(self, attempt: int) -> float:
        """Delay before the attempt following the zero-based ``attempt``."""
        exponential = self.config.base_delay * (2 ** attempt)
        jitter = random.uniform(0, self.config.max_jitter)
        return exponential + jitter
