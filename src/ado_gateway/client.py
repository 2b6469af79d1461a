"""
Root client: owns the providers, the resilience state and the facades.

All resilience state (rate limiter, circuit breaker, retry policy, timeout
and telemetry) belongs to one ``AzureDevOpsClient`` and is shared by its
facades. Two clients in the same process never share state.
"""

from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from ado_gateway.api import (
    BoardsAPI,
    IterationsAPI,
    PullRequestsAPI,
    RepositoriesAPI,
    ResilienceContext,
    TeamsAPI,
    WikiAPI,
    WiqlAPI,
    WorkItemsAPI,
)
from ado_gateway.config import AzureDevOpsConfig, Settings, get_settings
from ado_gateway.exceptions import ProviderNotInitializedException
from ado_gateway.logging_config import LoggerMixin
from ado_gateway.providers.base import BaseProvider, ProviderType
from ado_gateway.providers.factory import SecondaryProviderResolver, create_provider
from ado_gateway.resilience import (
    CircuitBreaker,
    CircuitBreakerState,
    RateLimiter,
    ResilienceConfig,
    RetryPolicy,
    TimeoutManager,
)
from ado_gateway.telemetry import DEFAULT_BUFFER_SIZE, TelemetryCollector, TelemetryMetrics

SERVICE_NAME = "azure_devops"

ProviderFactory = Callable[[AzureDevOpsConfig, ProviderType], Awaitable[BaseProvider]]


class AzureDevOpsClient(LoggerMixin):
    """
    Entry point of the gateway.

    Args:
        settings: Loaded settings; read from the environment when neither
            ``settings`` nor a full ``AzureDevOpsConfig`` is given
        config: An ``AzureDevOpsConfig``, or a dict of overrides applied on
            top of the settings' connection details
        provider_type: Transport to start with (primary falls back to HTTP
            when the SDK cannot be initialised)
        enable_telemetry: Overrides ``ENABLE_TELEMETRY``
        max_retries: Overrides the retry policy's ``max_attempts``; falsy values keep the default
        max_rate_limit: Overrides the rate limiter's bucket capacity; falsy values keep the default
        provider_factory: Coroutine building the active provider
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        config: Optional[Union[AzureDevOpsConfig, Dict[str, Any]]] = None,
        provider_type: ProviderType = ProviderType.PRIMARY,
        enable_telemetry: Optional[bool] = None,
        max_retries: Optional[int] = None,
        max_rate_limit: Optional[int] = None,
        provider_factory: Optional[ProviderFactory] = None,
    ):
        if isinstance(config, AzureDevOpsConfig):
            self.config = config
        else:
            settings = settings or get_settings()
            base = settings.azure_devops
            self.config = AzureDevOpsConfig(**{**base.model_dump(), **(config or {})}) if config else base

        self.settings = settings
        self.provider_type = provider_type
        self._provider_factory = provider_factory or create_provider

        resilience = settings.resilience_config() if settings else ResilienceConfig()
        # Falsy overrides keep the configured value; replace() re-runs validation
        if max_retries:
            resilience.retry = replace(resilience.retry, max_attempts=max_retries)
        if max_rate_limit:
            resilience.rate_limit = replace(resilience.rate_limit, capacity=max_rate_limit)
        self.resilience_config = resilience

        if enable_telemetry is None:
            enable_telemetry = settings.ENABLE_TELEMETRY if settings else True
        buffer_size = settings.telemetry.buffer_size if settings else DEFAULT_BUFFER_SIZE

        self.telemetry = TelemetryCollector(enabled=enable_telemetry, buffer_size=buffer_size)
        self.rate_limiter = RateLimiter(resilience.rate_limit)
        self.circuit_breaker = CircuitBreaker(
            SERVICE_NAME, resilience.circuit_breaker, on_state_change=self._on_circuit_state_change
        )
        self.retry_policy = RetryPolicy(SERVICE_NAME, resilience.retry)
        self.timeout_manager = TimeoutManager(SERVICE_NAME, resilience.timeout)

        self._provider: Optional[BaseProvider] = None
        self._resolver: Optional[SecondaryProviderResolver] = None
        self._facades: Dict[str, Any] = {}

    def _on_circuit_state_change(self, old_state: CircuitBreakerState, new_state: CircuitBreakerState) -> None:
        self.telemetry.record_circuit_breaker_change(new_state.value)

    @property
    def initialized(self) -> bool:
        return self._provider is not None

    @property
    def provider(self) -> Optional[BaseProvider]:
        return self._provider

    async def initialize(self) -> None:
        """Create the active provider and the facades. Calling it twice is a no-op."""
        if self._provider is not None:
            return

        provider = await self._provider_factory(self.config, self.provider_type)
        resolver = SecondaryProviderResolver(self.config, provider)
        context = ResilienceContext(
            rate_limiter=self.rate_limiter,
            circuit_breaker=self.circuit_breaker,
            retry_policy=self.retry_policy,
            timeout_manager=self.timeout_manager,
            telemetry=self.telemetry,
        )

        work_items = WorkItemsAPI(provider, context, resolver)
        self._facades = {
            "work_items": work_items,
            "wiql": WiqlAPI(provider, context, resolver, work_items=work_items),
            "boards": BoardsAPI(provider, context, resolver),
            "iterations": IterationsAPI(provider, context, resolver),
            "pull_requests": PullRequestsAPI(provider, context, resolver),
            "repositories": RepositoriesAPI(provider, context, resolver),
            "teams": TeamsAPI(provider, context, resolver),
            "wiki": WikiAPI(provider, context, resolver),
        }
        self._provider = provider
        self._resolver = resolver

        self.log_info(
            "Azure DevOps client initialized",
            transport=provider.provider_type.value,
            organization=self.config.organization,
            project=self.config.project,
        )

    def _facade(self, name: str):
        facade = self._facades.get(name)
        if facade is None:
            raise ProviderNotInitializedException("Provider not initialized. Call initialize() first")
        return facade

    @property
    def work_items(self) -> WorkItemsAPI:
        return self._facade("work_items")

    @property
    def wiql(self) -> WiqlAPI:
        return self._facade("wiql")

    @property
    def boards(self) -> BoardsAPI:
        return self._facade("boards")

    @property
    def iterations(self) -> IterationsAPI:
        return self._facade("iterations")

    @property
    def pull_requests(self) -> PullRequestsAPI:
        return self._facade("pull_requests")

    @property
    def repositories(self) -> RepositoriesAPI:
        return self._facade("repositories")

    @property
    def teams(self) -> TeamsAPI:
        return self._facade("teams")

    @property
    def wiki(self) -> WikiAPI:
        return self._facade("wiki")

    def get_health(self) -> Dict[str, Any]:
        if self._provider is None:
            return {
                "initialized": False,
                "provider": None,
                "circuit_breaker": "unknown",
                "rate_limit": 0,
            }
        return {
            "initialized": True,
            "provider": {
                "type": self._provider.provider_type.value,
                **self._provider.get_health().to_dict(),
            },
            "circuit_breaker": self.circuit_breaker.get_state().value,
            "rate_limit": self.rate_limiter.get_available_tokens(),
        }

    def get_telemetry(self) -> TelemetryMetrics:
        return self.telemetry.get_metrics()

    def reset_telemetry(self) -> None:
        self.telemetry.reset()

    def reset_rate_limit(self) -> None:
        self.rate_limiter.reset()

    def reset_circuit_breaker(self) -> None:
        self.circuit_breaker.reset()

    async def _close_providers(self) -> None:
        resolver, provider = self._resolver, self._provider
        self._resolver = None
        self._provider = None
        self._facades = {}

        if resolver is not None:
            await resolver.close()
        if provider is not None:
            await provider.close()

    async def reset(self) -> None:
        """Drop the providers and clear breaker and limiter; ``initialize()`` must be called again."""
        await self._close_providers()
        self.circuit_breaker.reset()
        self.rate_limiter.reset()
        self.log_info("Azure DevOps client reset")

    async def close(self) -> None:
        await self._close_providers()
        self.log_info("Azure DevOps client closed")

    async def __aenter__(self) -> "AzureDevOpsClient":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.close()


async def create_client(**options) -> AzureDevOpsClient:
    """Build and initialise a client in one step."""
    client = AzureDevOpsClient(**options)
    await client.initialize()
    return client
