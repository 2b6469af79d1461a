import os
from unittest.mock import AsyncMock

import pytest
from pydantic import SecretStr

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["AZURE_DEVOPS_PAT"] = "test-pat-value-not-a-real-token"
os.environ["AZURE_DEVOPS_ORG"] = "contoso"
os.environ["AZURE_DEVOPS_PROJECT"] = "Fabrikam"

from ado_gateway.api.base import ResilienceContext
from ado_gateway.config import AzureDevOpsConfig, get_settings
from ado_gateway.resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    RateLimitConfig,
    RateLimiter,
    RetryConfig,
    RetryPolicy,
    TimeoutConfig,
    TimeoutManager,
)
from ado_gateway.telemetry import TelemetryCollector

from helpers import TEST_PAT, StubProvider, StubResolver, StubSecondaryProvider


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def azure_config() -> AzureDevOpsConfig:
    return AzureDevOpsConfig(
        pat=SecretStr(TEST_PAT),
        organization="contoso",
        project="Fabrikam",
    )


@pytest.fixture
def telemetry() -> TelemetryCollector:
    return TelemetryCollector()


@pytest.fixture
def resilience_context(telemetry) -> ResilienceContext:
    """Resilience state with no retry delays, for fast facade tests."""
    return ResilienceContext(
        rate_limiter=RateLimiter(RateLimitConfig(capacity=1000, refill_rate=1000.0)),
        circuit_breaker=CircuitBreaker("test_service", CircuitBreakerConfig(failure_threshold=5, reset_timeout=60.0)),
        retry_policy=RetryPolicy("test_service", RetryConfig(max_attempts=3, base_delay=0.0, max_jitter=0.0)),
        timeout_manager=TimeoutManager("test_service", TimeoutConfig(attempt_timeout=5.0)),
        telemetry=telemetry,
    )


@pytest.fixture
async def primary_provider(azure_config) -> StubProvider:
    provider = StubProvider(azure_config)
    await provider.initialize()
    return provider


@pytest.fixture
async def secondary_provider(azure_config) -> StubSecondaryProvider:
    provider = StubSecondaryProvider(azure_config)
    await provider.initialize()
    return provider


@pytest.fixture
def resolver(secondary_provider) -> StubResolver:
    return StubResolver(secondary_provider)


@pytest.fixture
def mock_provider_factory(primary_provider):
    """A ``provider_factory`` returning the stub primary provider."""
    return AsyncMock(return_value=primary_provider)
