"""
System Routes: Health Check and Monitoring Endpoints

Provides system-level endpoints for health monitoring, circuit breaker
inspection and Prometheus metrics export.

Architectural Pattern: System API + Health Check Pattern
"""

from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from api.schemas import CircuitStatusResponse, HealthCheckResponse
from config.settings import Settings
from container import container, get_metrics, get_orchestrator
from core.enums import CircuitState
from infrastructure.monitoring import MetricsCollector
from orchestration.content_agent import ContentOrchestrator

router = APIRouter(prefix="/system", tags=["System"])


# Simple dependency functions for FastAPI
def get_orchestrator_dependency() -> ContentOrchestrator:
    """Get ContentOrchestrator instance for FastAPI dependency injection."""
    return get_orchestrator()


def get_metrics_dependency() -> MetricsCollector:
    """Get MetricsCollector instance for FastAPI dependency injection."""
    return get_metrics()


def get_settings_dependency() -> Settings:
    return container.config()


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check endpoint",
    description="System health with per-provider circuit state",
)
async def health_check(
    orchestrator: ContentOrchestrator = Depends(get_orchestrator_dependency),
    app_settings: Settings = Depends(get_settings_dependency),
) -> HealthCheckResponse:
    """
    Report overall health.

    The service is degraded while any provider circuit is open; it can still
    serve requests for the other providers.
    """
    dependencies: Dict[str, str] = {
        provider: info["state"] for provider, info in orchestrator.circuit_status().items()
    }
    overall_status = (
        "degraded" if CircuitState.OPEN.value in dependencies.values() else "healthy"
    )
    return HealthCheckResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc),
        version=app_settings.app_version,
        dependencies=dependencies,
    )


@router.get("/circuits", response_model=CircuitStatusResponse, summary="Circuit breaker state")
async def circuit_status(
    orchestrator: ContentOrchestrator = Depends(get_orchestrator_dependency),
) -> CircuitStatusResponse:
    return CircuitStatusResponse(circuits=orchestrator.circuit_status())


@router.get("/metrics", summary="Prometheus metrics")
async def metrics_endpoint(
    metrics: MetricsCollector = Depends(get_metrics_dependency),
    app_settings: Settings = Depends(get_settings_dependency),
) -> Response:
    """Prometheus metrics in text exposition format."""
    if not app_settings.monitoring.enable_prometheus:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Metrics export disabled")
    return Response(content=metrics.export_metrics(), media_type=metrics.get_content_type())
