"""Utility modules for the Azure DevOps gateway."""

from .error_utils import (
    set_correlation_id,
    get_correlation_id,
    ensure_correlation_id,
    correlation_scope,
    create_error_context,
    redact_sensitive,
    REDACTED,
)

__all__ = [
    "set_correlation_id",
    "get_correlation_id",
    "ensure_correlation_id",
    "correlation_scope",
    "create_error_context",
    "redact_sensitive",
    "REDACTED",
]
