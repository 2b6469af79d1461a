"""Monitoring and health check endpoints for a gateway client."""

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict

from fastapi import APIRouter, HTTPException, Response
from prometheus_client import CONTENT_TYPE_LATEST

if TYPE_CHECKING:
    from ado_gateway.client import AzureDevOpsClient

logger = logging.getLogger(__name__)


def overall_status(health: Dict[str, Any]) -> str:
    if not health.get("initialized"):
        return "uninitialized"
    state = health.get("circuit_breaker")
    if state == "open":
        return "degraded"
    if state == "half_open":
        return "recovering"
    return "healthy"


def create_monitoring_router(client: "AzureDevOpsClient") -> APIRouter:
    """Build a router exposing the health, telemetry and reset controls of ``client``."""
    router = APIRouter(prefix="/resilience", tags=["resilience"])

    @router.get("/health")
    async def get_resilience_health() -> Dict[str, Any]:
        """
        Get overall health status of the client's resilience state.

        Returns:
            Dictionary containing the overall status and the client health snapshot
        """
        try:
            health = client.get_health()
            return {
                "status": overall_status(health),
                "timestamp": datetime.now().isoformat(),
                **health,
                "circuit_breaker_stats": client.circuit_breaker.get_stats(),
                "rate_limiter_stats": client.rate_limiter.get_stats(),
            }
        except Exception as e:
            logger.error(f"Error getting resilience health: {e}")
            raise HTTPException(status_code=500, detail="Failed to get resilience health status")

    @router.get("/telemetry")
    async def get_telemetry() -> Dict[str, Any]:
        return {
            "timestamp": datetime.now().isoformat(),
            "enabled": client.telemetry.is_enabled(),
            "metrics": client.get_telemetry().to_dict(),
        }

    @router.get("/metrics")
    async def get_prometheus_metrics() -> Response:
        """Prometheus exposition of this client's telemetry registry."""
        return Response(content=client.telemetry.export_prometheus(), media_type=CONTENT_TYPE_LATEST)

    @router.post("/circuit-breaker/reset")
    async def reset_circuit_breaker() -> Dict[str, Any]:
        client.reset_circuit_breaker()
        return {
            "message": "Circuit breaker has been reset",
            "timestamp": datetime.now().isoformat(),
            "current_state": client.circuit_breaker.get_state().value,
        }

    @router.post("/rate-limit/reset")
    async def reset_rate_limit() -> Dict[str, Any]:
        client.reset_rate_limit()
        return {
            "message": "Rate limiter has been reset",
            "timestamp": datetime.now().isoformat(),
            "available_tokens": client.rate_limiter.get_available_tokens(),
        }

    @router.post("/telemetry/reset")
    async def reset_telemetry() -> Dict[str, Any]:
        client.reset_telemetry()
        return {
            "message": "Telemetry has been reset",
            "timestamp": datetime.now().isoformat(),
        }

    return router
