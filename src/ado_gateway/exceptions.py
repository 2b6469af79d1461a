"""
Exception hierarchy for the Azure DevOps gateway.

Every error raised at a provider boundary carries an explicit ``ErrorKind``
so that the retry policy, the circuit breaker and the per-operation fallback
branch on structure rather than on message text.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


RETRYABLE_STATUS_CODES = frozenset({429, 503, 504})

# Markers emitted by older transports and third-party code for capability gaps.
UNSUPPORTED_MARKERS = ("not supported via sdk", "not implemented")


class ErrorKind(str, Enum):
    """How the resilience layer should treat an error."""

    TRANSIENT = "transient"
    UNSUPPORTED = "unsupported"
    VALIDATION = "validation"
    CIRCUIT_OPEN = "circuit_open"
    PERMANENT = "permanent"
    CANCELLED = "cancelled"


class ErrorCode(str, Enum):
    """Enumeration of error codes for consistent error identification."""

    # General errors (1000-1999)
    INTERNAL_ERROR = "ADO1000"
    VALIDATION_ERROR = "ADO1001"
    CONFIGURATION_ERROR = "ADO1002"

    # Provider errors (2000-2999)
    PROVIDER_NOT_INITIALIZED = "ADO2000"
    PROVIDER_INITIALIZATION_FAILED = "ADO2001"
    OPERATION_UNSUPPORTED = "ADO2002"

    # Transport errors (3000-3999)
    TRANSPORT_ERROR = "ADO3000"
    RATE_LIMITED = "ADO3001"
    SERVICE_UNAVAILABLE = "ADO3002"
    GATEWAY_TIMEOUT = "ADO3003"

    # Resilience errors (4000-4999)
    CIRCUIT_OPEN = "ADO4000"
    RETRY_EXHAUSTED = "ADO4001"
    OPERATION_TIMEOUT = "ADO4002"
    OPERATION_CANCELLED = "ADO4003"


_STATUS_ERROR_CODES = {
    429: ErrorCode.RATE_LIMITED,
    503: ErrorCode.SERVICE_UNAVAILABLE,
    504: ErrorCode.GATEWAY_TIMEOUT,
}


class GatewayException(Exception):
    """
    Base exception class for all gateway exceptions.

    Provides structured error information including the error code, the
    error kind used by the resilience layer, a correlation id and contextual
    metadata.
    """

    kind: ErrorKind = ErrorKind.PERMANENT

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        kind: Optional[ErrorKind] = None,
        details: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        if kind is not None:
            self.kind = kind
        self.details = details or {}
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self.timestamp = datetime.now(timezone.utc).isoformat()

    @property
    def status_code(self) -> Optional[int]:
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_code": self.error_code.value,
            "error_kind": self.kind.value,
            "message": self.message,
            "details": self.details,
            "correlation_id": self.correlation_id,
            "timestamp": self.timestamp,
            "exception_type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        return f"[{self.error_code.value}] {self.message}"


class ValidationException(GatewayException):
    """Raised for precondition failures detected before any network call."""

    kind = ErrorKind.VALIDATION

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["invalid_value"] = str(value)

        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            details=details,
            **kwargs
        )
        self.field = field


class ConfigurationException(GatewayException):
    """Exception raised for configuration errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            details=details,
            **kwargs
        )


class ProviderNotInitializedException(GatewayException):
    """Raised when a provider or client is used before ``initialize()``."""

    def __init__(self, message: str = "Provider not initialized", **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.PROVIDER_NOT_INITIALIZED,
            **kwargs
        )


class ProviderInitializationException(GatewayException):
    """Raised when a transport cannot be brought up."""

    def __init__(self, transport: str, message: str, **kwargs):
        details = kwargs.pop("details", {})
        details["transport"] = transport
        super().__init__(
            message=f"{transport.upper()} provider initialization failed: {message}",
            error_code=ErrorCode.PROVIDER_INITIALIZATION_FAILED,
            details=details,
            **kwargs
        )
        self.transport = transport


class UnsupportedOperationException(GatewayException):
    """Raised by a transport for an operation outside its capability set."""

    kind = ErrorKind.UNSUPPORTED

    def __init__(self, operation: str, transport: str = "sdk", **kwargs):
        details = kwargs.pop("details", {})
        details.update({"operation": operation, "transport": transport})
        super().__init__(
            message=f"{operation} is not supported via {transport.upper()}",
            error_code=ErrorCode.OPERATION_UNSUPPORTED,
            details=details,
            **kwargs
        )
        self.operation = operation
        self.transport = transport


class TransportException(GatewayException):
    """
    A failed call against Azure DevOps.

    Statuses 429, 503 and 504 are transient; everything else is permanent.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        transport: Optional[str] = None,
        response_body: Optional[Any] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if status_code is not None:
            details["status_code"] = status_code
        if transport:
            details["transport"] = transport
        if response_body is not None:
            details["response_body"] = response_body

        kind = ErrorKind.TRANSIENT if status_code in RETRYABLE_STATUS_CODES else ErrorKind.PERMANENT
        super().__init__(
            message=message,
            error_code=_STATUS_ERROR_CODES.get(status_code, ErrorCode.TRANSPORT_ERROR),
            kind=kind,
            details=details,
            **kwargs
        )
        self._status_code = status_code
        self.transport = transport
        self.response_body = response_body

    @property
    def status_code(self) -> Optional[int]:
        return self._status_code


def status_code_of(exception: BaseException) -> Optional[int]:
    """Extract an HTTP-like status code from any exception, if it has one."""
    status_code = getattr(exception, "status_code", None)
    if isinstance(status_code, int):
        return status_code

    # httpx and requests style errors
    response = getattr(exception, "response", None)
    if response is not None:
        for attr in ("status_code", "status"):
            value = getattr(response, attr, None)
            if isinstance(value, int):
                return value
    return None


def classify_error(exception: BaseException) -> ErrorKind:
    """Map an exception onto the error kind the resilience layer acts on."""
    if isinstance(exception, GatewayException):
        return exception.kind

    if isinstance(exception, NotImplementedError):
        return ErrorKind.UNSUPPORTED

    status_code = status_code_of(exception)
    if status_code is not None:
        return ErrorKind.TRANSIENT if status_code in RETRYABLE_STATUS_CODES else ErrorKind.PERMANENT

    message = str(exception).lower()
    if any(marker in message for marker in UNSUPPORTED_MARKERS):
        return ErrorKind.UNSUPPORTED

    return ErrorKind.PERMANENT


def is_unsupported(exception: BaseException) -> bool:
    return classify_error(exception) is ErrorKind.UNSUPPORTED


def is_retryable(exception: BaseException) -> bool:
    return classify_error(exception) is ErrorKind.TRANSIENT
