"""Provider selection: startup fallback and the lazily created secondary."""

import asyncio
from typing import Optional
import logging

from ado_gateway.config import AzureDevOpsConfig
from .base import BaseProvider, ProviderType
from .http_provider import HttpProvider
from .sdk_provider import SdkProvider

logger = logging.getLogger(__name__)


async def _create_http_provider(config: AzureDevOpsConfig) -> HttpProvider:
    provider = HttpProvider(config)
    await provider.initialize()
    return provider


async def create_provider(
    config: AzureDevOpsConfig,
    provider_type: ProviderType = ProviderType.PRIMARY,
) -> BaseProvider:
    """
    Create and initialise the active provider.

    A primary request falls back to the HTTP transport when the SDK cannot be
    brought up; a failure of the HTTP transport itself propagates.
    """
    if provider_type is ProviderType.SECONDARY:
        return await _create_http_provider(config)

    try:
        provider = SdkProvider(config)
        await provider.initialize()
        return provider
    except Exception as e:
        logger.warning(
            f"SDK provider initialization failed, falling back to HTTP: {e}",
            extra={"transport": ProviderType.PRIMARY.value},
        )
    return await _create_http_provider(config)


class SecondaryProviderResolver:
    """
    Supplies the HTTP provider used to retry operations the active provider
    cannot serve.

    The provider is created on first use and cached until ``reset()``.
    """

    def __init__(self, config: AzureDevOpsConfig, active_provider: Optional[BaseProvider] = None):
        self.config = config
        self.active_provider = active_provider
        self._secondary: Optional[BaseProvider] = None
        self._lock = asyncio.Lock()

    @property
    def cached(self) -> Optional[BaseProvider]:
        return self._secondary

    async def resolve(self) -> BaseProvider:
        if self.active_provider is not None and self.active_provider.provider_type is ProviderType.SECONDARY:
            return self.active_provider

        if self._secondary is not None:
            return self._secondary

        async with self._lock:
            if self._secondary is None:
                logger.info("Creating HTTP provider for per-operation fallback")
                self._secondary = await _create_http_provider(self.config)
            return self._secondary

    async def reset(self) -> None:
        """Close and forget the cached secondary provider."""
        async with self._lock:
            secondary, self._secondary = self._secondary, None
        if secondary is not None:
            await secondary.close()

    async def close(self) -> None:
        await self.reset()
