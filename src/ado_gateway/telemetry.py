"""
Request telemetry for the Azure DevOps gateway.

The collector keeps a bounded buffer of per-operation outcomes and derives
aggregate statistics on demand. Each collector also owns a private
Prometheus registry so that several clients in one process never share
metric state.
"""

import math
import threading
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional
import logging

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 1000


@dataclass(frozen=True)
class OutcomeRecord:
    """One completed facade operation."""
    operation: str
    succeeded: bool
    duration_ms: float
    transport: str
    fallback_used: bool = False
    timestamp: float = field(default_factory=time.time)


@dataclass
class TelemetryMetrics:
    """Aggregates over the current buffer."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_duration: float = 0.0
    average_duration: float = 0.0
    p95_duration: float = 0.0
    p99_duration: float = 0.0
    by_operation: Dict[str, int] = field(default_factory=dict)
    by_transport: Dict[str, int] = field(default_factory=dict)
    fallback_requests: int = 0
    circuit_breaker_state_changes: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _percentile(sorted_durations: List[float], fraction: float) -> float:
    # Index floor(n * fraction) on the ascending list; not a nearest-rank percentile.
    if not sorted_durations:
        return 0.0
    index = math.floor(len(sorted_durations) * fraction)
    if index >= len(sorted_durations):
        return 0.0
    return sorted_durations[index]


class TelemetryCollector:
    """Bounded in-memory log of operation outcomes."""

    def __init__(self, enabled: bool = True, buffer_size: int = DEFAULT_BUFFER_SIZE):
        self._enabled = enabled
        self.buffer_size = buffer_size
        self._records: List[OutcomeRecord] = []
        self._circuit_breaker_changes = 0
        self._lock = threading.Lock()

        self.registry = CollectorRegistry()
        self._requests_total = Counter(
            "ado_gateway_requests_total",
            "Azure DevOps gateway operations by outcome.",
            ["operation", "transport", "outcome"],
            registry=self.registry,
        )
        self._request_duration = Histogram(
            "ado_gateway_request_duration_seconds",
            "Duration of successful Azure DevOps gateway operations.",
            ["operation", "transport"],
            registry=self.registry,
        )
        self._fallbacks_total = Counter(
            "ado_gateway_fallbacks_total",
            "Operations re-issued against the secondary transport.",
            ["operation"],
            registry=self.registry,
        )
        self._breaker_transitions = Counter(
            "ado_gateway_circuit_breaker_transitions_total",
            "Circuit breaker state transitions.",
            ["state"],
            registry=self.registry,
        )

    def record_request(self, record: OutcomeRecord) -> None:
        """Append an outcome, evicting the oldest entries beyond the buffer size."""
        if not self._enabled:
            return

        with self._lock:
            self._records.append(record)
            if len(self._records) > self.buffer_size:
                self._records = self._records[-self.buffer_size:]

        outcome = "success" if record.succeeded else "failure"
        self._requests_total.labels(record.operation, record.transport, outcome).inc()
        if record.succeeded:
            self._request_duration.labels(record.operation, record.transport).observe(record.duration_ms / 1000.0)
        if record.fallback_used:
            self._fallbacks_total.labels(record.operation).inc()

    def record_error(self, error: BaseException, context: Optional[Mapping[str, Any]] = None) -> None:
        """Record a failed outcome synthesised from an error and free-form context."""
        if not self._enabled:
            return

        context = context or {}
        self.record_request(
            OutcomeRecord(
                operation=context.get("operation") or "unknown",
                succeeded=False,
                duration_ms=0.0,
                transport=context.get("transport") or "unknown",
                fallback_used=bool(context.get("fallback_used", False)),
            )
        )
        logger.debug(f"Recorded failure of {type(error).__name__} in telemetry")

    def record_circuit_breaker_change(self, state: Optional[str] = None) -> None:
        if not self._enabled:
            return
        with self._lock:
            self._circuit_breaker_changes += 1
        self._breaker_transitions.labels(state or "unknown").inc()

    def get_records(self) -> List[OutcomeRecord]:
        """Snapshot of the buffered outcomes, oldest first."""
        with self._lock:
            return list(self._records)

    def get_metrics(self) -> TelemetryMetrics:
        with self._lock:
            records = list(self._records)
            breaker_changes = self._circuit_breaker_changes

        durations = sorted(r.duration_ms for r in records if r.succeeded)
        total_requests = len(records)
        successful_requests = sum(1 for r in records if r.succeeded)
        total_duration = sum(r.duration_ms for r in records)

        by_operation: Dict[str, int] = {}
        by_transport: Dict[str, int] = {}
        for record in records:
            by_operation[record.operation] = by_operation.get(record.operation, 0) + 1
            by_transport[record.transport] = by_transport.get(record.transport, 0) + 1

        return TelemetryMetrics(
            total_requests=total_requests,
            successful_requests=successful_requests,
            failed_requests=total_requests - successful_requests,
            total_duration=total_duration,
            average_duration=total_duration / total_requests if total_requests else 0.0,
            p95_duration=_percentile(durations, 0.95),
            p99_duration=_percentile(durations, 0.99),
            by_operation=by_operation,
            by_transport=by_transport,
            fallback_requests=sum(1 for r in records if r.fallback_used),
            circuit_breaker_state_changes=breaker_changes,
        )

    def export_prometheus(self) -> bytes:
        """Render this collector's registry in the Prometheus text format."""
        return generate_latest(self.registry)

    def reset(self) -> None:
        """Clear the buffer and the breaker change counter.

        Prometheus counters are monotonic and are left untouched.
        """
        with self._lock:
            self._records = []
            self._circuit_breaker_changes = 0

    def is_enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        logger.info(f"Telemetry {'enabled' if enabled else 'disabled'}")
