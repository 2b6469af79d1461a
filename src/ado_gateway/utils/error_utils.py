"""
Helpers for error context, correlation tracking and secret redaction.

Correlation ids are carried in a ``ContextVar`` so that every log line
emitted while a facade operation is in flight can be tied back to it,
including lines emitted from retry and circuit breaker internals.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, Optional
from uuid import uuid4

REDACTED = "[REDACTED]"

SENSITIVE_KEYS = frozenset({"pat", "token", "password", "authorization", "secret"})

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")


def set_correlation_id(correlation_id: str) -> None:
    """Set correlation ID in context."""
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    """Get correlation ID from context."""
    return correlation_id_var.get() or None


def ensure_correlation_id() -> str:
    """Return the current correlation ID, creating one if none is set."""
    correlation_id = correlation_id_var.get()
    if not correlation_id:
        correlation_id = str(uuid4())
        correlation_id_var.set(correlation_id)
    return correlation_id


@contextmanager
def correlation_scope(correlation_id: Optional[str] = None) -> Iterator[str]:
    """Bind a correlation id for the duration of the block.

    An already bound id is reused so nested operations (for example the
    batch fetch behind a WIQL query) share one id.
    """
    existing = correlation_id_var.get()
    if existing and correlation_id is None:
        yield existing
        return

    token = correlation_id_var.set(correlation_id or str(uuid4()))
    try:
        yield correlation_id_var.get()
    finally:
        correlation_id_var.reset(token)


def redact_sensitive(value: Any) -> Any:
    """Return a copy of ``value`` with credential-like entries masked."""
    if isinstance(value, dict):
        return {
            key: REDACTED if str(key).lower() in SENSITIVE_KEYS else redact_sensitive(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(redact_sensitive(item) for item in value)
    return value


def create_error_context(
    operation: str,
    resource_id: Optional[str] = None,
    **kwargs
) -> Dict[str, Any]:
    """
    Create standardized error context for exceptions.

    Args:
        operation: The operation being performed
        resource_id: ID of the resource being operated on
        **kwargs: Additional context fields

    Returns:
        Dictionary with error context
    """
    context = {
        "operation": operation,
        "correlation_id": get_correlation_id(),
    }

    if resource_id is not None:
        context["resource_id"] = str(resource_id)

    context.update(kwargs)
    return redact_sensitive(context)
