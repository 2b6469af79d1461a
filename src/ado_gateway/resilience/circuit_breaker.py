"""Circuit breaker implementation for Azure DevOps calls."""

import asyncio
import time
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar
from dataclasses import dataclass
import logging

from ado_gateway.exceptions import ErrorKind, classify_error
from .exceptions import CircuitBreakerOpenError

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Errors that say nothing about the health of the remote service.
_NEUTRAL_KINDS = frozenset({ErrorKind.UNSUPPORTED, ErrorKind.VALIDATION, ErrorKind.CANCELLED})


class CircuitBreakerState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Blocking requests due to failures
    HALF_OPEN = "half_open"  # A single trial call is testing recovery


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker behavior."""
    failure_threshold: int = 5   # Consecutive failures before opening
    reset_timeout: float = 60.0  # Seconds after the last failure before probing


StateChangeCallback = Callable[[CircuitBreakerState, CircuitBreakerState], None]


class CircuitBreaker:
    """
    Three-state failure isolation gate around the retrying call.

    CLOSED counts consecutive failures and opens at the threshold. OPEN
    rejects calls until ``reset_timeout`` has passed since the last failure,
    then lets exactly one trial call through in HALF_OPEN. A successful trial
    closes the circuit; a failed trial re-opens it.
    """

    def __init__(
        self,
        service_name: str = "azure_devops",
        config: Optional[CircuitBreakerConfig] = None,
        on_state_change: Optional[StateChangeCallback] = None,
    ):
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self.on_state_change = on_state_change

        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        self._last_failure_time = 0.0
        self._trial_in_flight = False
        self._lock = asyncio.Lock()

        logger.info(f"Circuit breaker initialized for service '{service_name}'")

    @property
    def state(self) -> CircuitBreakerState:
        """Get current circuit breaker state."""
        return self._state

    @property
    def failure_count(self) -> int:
        """Get current failure count."""
        return self._failure_count

    def get_state(self) -> CircuitBreakerState:
        return self._state

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Execute an operation with circuit breaker protection.

        Args:
            operation: Zero-argument callable returning an awaitable

        Returns:
            The result of the operation

        Raises:
            CircuitBreakerOpenError: If the circuit is open
            Exception: Any exception raised by the operation
        """
        async with self._lock:
            is_trial = self._admit()

        try:
            result = await operation()
        except BaseException as e:
            async with self._lock:
                if is_trial:
                    self._trial_in_flight = False
                if isinstance(e, Exception) and classify_error(e) not in _NEUTRAL_KINDS:
                    self._record_failure()
            raise

        async with self._lock:
            if is_trial:
                self._trial_in_flight = False
            self._record_success()
        return result

    def _admit(self) -> bool:
        """Decide whether a call may proceed; returns True for the half-open trial call."""
        if self._state == CircuitBreakerState.OPEN:
            if time.monotonic() - self._last_failure_time >= self.config.reset_timeout:
                self._transition(CircuitBreakerState.HALF_OPEN)
            else:
                logger.warning(
                    f"Circuit breaker OPEN for service '{self.service_name}', "
                    f"blocking request after {self._failure_count} failures"
                )
                raise CircuitBreakerOpenError(self.service_name, self._failure_count)

        if self._state == CircuitBreakerState.HALF_OPEN:
            if self._trial_in_flight:
                raise CircuitBreakerOpenError(self.service_name, self._failure_count)
            self._trial_in_flight = True
            logger.info(f"Circuit breaker HALF_OPEN for service '{self.service_name}', testing recovery")
            return True

        return False

    def _record_success(self) -> None:
        if self._failure_count > 0:
            logger.debug(f"Resetting failure count for service '{self.service_name}' after success")
        self._failure_count = 0
        if self._state == CircuitBreakerState.HALF_OPEN:
            self._transition(CircuitBreakerState.CLOSED)

    def _record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        logger.warning(
            f"Failure recorded for service '{self.service_name}' "
            f"({self._failure_count}/{self.config.failure_threshold})"
        )

        if self._state == CircuitBreakerState.HALF_OPEN or self._failure_count >= self.config.failure_threshold:
            self._transition(CircuitBreakerState.OPEN)

    def _transition(self, new_state: CircuitBreakerState) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state

        if new_state == CircuitBreakerState.OPEN:
            logger.error(
                f"Circuit breaker OPENED for service '{self.service_name}' "
                f"after {self._failure_count} failures"
            )
        elif new_state == CircuitBreakerState.CLOSED:
            logger.info(f"Circuit breaker CLOSED for service '{self.service_name}' - service recovered")
        else:
            logger.info(f"Circuit breaker transitioned to HALF_OPEN for service '{self.service_name}'")

        if self.on_state_change is not None:
            self.on_state_change(old_state, new_state)

    def reset(self) -> None:
        """Force the circuit back to CLOSED with no recorded failures."""
        self._transition(CircuitBreakerState.CLOSED)
        self._failure_count = 0
        self._last_failure_time = 0.0
        self._trial_in_flight = False

    def get_stats(self) -> dict:
        """Get circuit breaker statistics."""
        return {
            "service_name": self.service_name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.config.failure_threshold,
            "reset_timeout": self.config.reset_timeout,
            "last_failure_time": self._last_failure_time,
        }
