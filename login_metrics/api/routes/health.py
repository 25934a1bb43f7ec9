"""Health check endpoints."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from login_metrics.api.dependencies import get_metrics_engine
from login_metrics.services.metrics_engine import MetricsEngine

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    days_tracked: int
    sketch_precision: int


@router.get("/health", response_model=HealthResponse)
def health_check(engine: MetricsEngine = Depends(get_metrics_engine)) -> HealthResponse:
    """Report service status and how much state the engine holds."""
    return HealthResponse(
        status="healthy",
        days_tracked=len(engine.tracked_days),
        sketch_precision=engine.precision,
    )


@router.get("/health/liveness")
async def liveness() -> dict[str, str]:
    """Liveness probe for Kubernetes."""
    return {"status": "alive"}
