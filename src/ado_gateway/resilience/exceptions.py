"""Custom exceptions for resilience patterns."""

from typing import Optional

from ado_gateway.exceptions import ErrorCode, ErrorKind, GatewayException


class ResilienceError(GatewayException):
    """Base exception for resilience-related errors."""

    def __init__(self, message: str, error_code: ErrorCode, service_name: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if service_name:
            details["service_name"] = service_name
        super().__init__(message, error_code=error_code, details=details, **kwargs)
        self.service_name = service_name


class CircuitBreakerOpenError(ResilienceError):
    """Raised when circuit breaker is open and blocking requests."""

    kind = ErrorKind.CIRCUIT_OPEN

    def __init__(self, service_name: str, failure_count: int):
        message = f"Circuit breaker is OPEN for service '{service_name}' after {failure_count} failures"
        super().__init__(message, ErrorCode.CIRCUIT_OPEN, service_name)
        self.failure_count = failure_count


class RetryExhaustedError(ResilienceError):
    """Raised when the retry loop ends without having observed any error."""

    def __init__(self, service_name: str, attempts: int):
        super().__init__("max retries exceeded", ErrorCode.RETRY_EXHAUSTED, service_name)
        self.attempts = attempts


class OperationTimeoutError(ResilienceError):
    """Raised when a single attempt exceeds its hard timeout.

    Treated like a gateway timeout (504) so the retry policy absorbs it.
    """

    kind = ErrorKind.TRANSIENT

    def __init__(self, service_name: str, timeout_seconds: float):
        message = f"Operation timed out for service '{service_name}' after {timeout_seconds}s"
        super().__init__(message, ErrorCode.OPERATION_TIMEOUT, service_name)
        self.timeout_seconds = timeout_seconds

    @property
    def status_code(self) -> int:
        return 504


class OperationCancelledError(ResilienceError):
    """Raised when a caller's cancellation token fires during an operation."""

    kind = ErrorKind.CANCELLED

    def __init__(self, reason: str = "Operation cancelled", service_name: Optional[str] = None):
        super().__init__(reason, ErrorCode.OPERATION_CANCELLED, service_name)
