"""Transports that talk to Azure DevOps."""

from .base import BaseProvider, ProviderHealth, ProviderType
from .factory import SecondaryProviderResolver, create_provider
from .http_provider import HttpProvider
from .sdk_provider import SdkProvider

__all__ = [
    "BaseProvider",
    "ProviderHealth",
    "ProviderType",
    "SecondaryProviderResolver",
    "create_provider",
    "HttpProvider",
    "SdkProvider",
]
