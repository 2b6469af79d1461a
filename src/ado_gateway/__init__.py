"""
Resilient gateway to Azure DevOps.

A client routes work item, WIQL, board, iteration, pull request, repository,
team and wiki operations through a shared rate limiter, circuit breaker and
retry policy, over either the azure-devops SDK or the REST API, falling back
to REST for operations the SDK does not cover.
"""

from .client import AzureDevOpsClient, create_client
from .config import AzureDevOpsConfig, Settings, get_settings, load_settings
from .exceptions import (
    ConfigurationException,
    ErrorCode,
    ErrorKind,
    GatewayException,
    ProviderInitializationException,
    ProviderNotInitializedException,
    TransportException,
    UnsupportedOperationException,
    ValidationException,
    classify_error,
)
from .providers import ProviderType
from .resilience import CancellationToken, cancellation_scope
from .schemas import JsonPatchOperation, WorkItemRelationType

__version__ = "0.1.0"

__all__ = [
    "AzureDevOpsClient",
    "create_client",
    "AzureDevOpsConfig",
    "Settings",
    "get_settings",
    "load_settings",
    "ConfigurationException",
    "ErrorCode",
    "ErrorKind",
    "GatewayException",
    "ProviderInitializationException",
    "ProviderNotInitializedException",
    "TransportException",
    "UnsupportedOperationException",
    "ValidationException",
    "classify_error",
    "ProviderType",
    "CancellationToken",
    "cancellation_scope",
    "JsonPatchOperation",
    "WorkItemRelationType",
]
