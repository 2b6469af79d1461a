"""The resilient call chain shared by every domain facade."""

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ado_gateway.exceptions import ErrorKind, classify_error
from ado_gateway.logging_config import LoggerMixin, log_operation_error, log_request, log_response
from ado_gateway.providers.base import BaseProvider, ProviderType
from ado_gateway.providers.factory import SecondaryProviderResolver
from ado_gateway.resilience.cancellation import run_cancellable
from ado_gateway.resilience.circuit_breaker import CircuitBreaker
from ado_gateway.resilience.rate_limiter import RateLimiter
from ado_gateway.resilience.retry import RetryPolicy
from ado_gateway.resilience.timeout import TimeoutManager
from ado_gateway.telemetry import OutcomeRecord, TelemetryCollector
from ado_gateway.utils.error_utils import correlation_scope, create_error_context
from ado_gateway.validation import ValidationRules

T = TypeVar('T')

ProviderCall = Callable[[BaseProvider], Awaitable[T]]


@dataclass
class ResilienceContext:
    """The per-client resilience state every facade shares."""
    rate_limiter: RateLimiter
    circuit_breaker: CircuitBreaker
    retry_policy: RetryPolicy
    timeout_manager: TimeoutManager
    telemetry: TelemetryCollector


class ResilientFacade(LoggerMixin):
    """
    Base class for the domain facades.

    ``_execute`` runs one provider call through the full chain: rate limit,
    request log, circuit breaker around retry around the per-attempt timeout,
    then response log and telemetry. A capability gap on the primary
    transport is re-issued once against the secondary transport.
    """

    def __init__(
        self,
        provider: BaseProvider,
        resilience: ResilienceContext,
        resolver: Optional[SecondaryProviderResolver] = None,
        validator: Optional[ValidationRules] = None,
    ):
        self.provider = provider
        self.resilience = resilience
        self.resolver = resolver
        self.validator = validator or ValidationRules()

    def _can_fall_back(self, provider: BaseProvider, error: Exception) -> bool:
        return (
            self.resolver is not None
            and provider.provider_type is ProviderType.PRIMARY
            and classify_error(error) is ErrorKind.UNSUPPORTED
        )

    async def _execute(self, operation: str, target: Any, call: ProviderCall, **metadata) -> T:
        with correlation_scope():
            try:
                return await self._run(self.provider, operation, target, call, False, metadata)
            except Exception as e:
                if not self._can_fall_back(self.provider, e):
                    raise

            secondary_transport = ProviderType.SECONDARY.value
            try:
                secondary = await self.resolver.resolve()
            except Exception as e:
                self._record_failure(e, operation, target, secondary_transport, True, metadata)
                raise

            return await self._run(secondary, operation, target, call, True, metadata)

    def _record_failure(
        self,
        error: Exception,
        operation: str,
        target: Any,
        transport: str,
        fallback_used: bool,
        metadata: dict,
    ) -> None:
        log_operation_error(
            error,
            create_error_context(operation, target, transport=transport, fallback_used=fallback_used, **metadata),
        )
        self.resilience.telemetry.record_error(
            error, {"operation": operation, "transport": transport, "fallback_used": fallback_used}
        )

    async def _run(
        self,
        provider: BaseProvider,
        operation: str,
        target: Any,
        call: ProviderCall,
        fallback_used: bool,
        metadata: dict,
    ) -> T:
        ctx = self.resilience
        transport = provider.provider_type.value

        try:
            await ctx.rate_limiter.acquire()
            log_request(operation, target, transport=transport, fallback_used=fallback_used, **metadata)
            start = time.monotonic()

            result = await ctx.circuit_breaker.execute(
                lambda: ctx.retry_policy.execute(
                    lambda: ctx.timeout_manager.execute(
                        lambda: run_cancellable(call(provider))
                    )
                )
            )
        except Exception as e:
            if not fallback_used and self._can_fall_back(provider, e):
                self.log_info(
                    f"{operation} is not available via {transport}, falling back to HTTP",
                    operation=operation,
                )
                raise
            self._record_failure(e, operation, target, transport, fallback_used, metadata)
            raise

        duration_ms = (time.monotonic() - start) * 1000
        log_response(operation, target, duration_ms, transport=transport, fallback_used=fallback_used)
        ctx.telemetry.record_request(
            OutcomeRecord(
                operation=operation,
                succeeded=True,
                duration_ms=duration_ms,
                transport=transport,
                fallback_used=fallback_used,
            )
        )
        return result
