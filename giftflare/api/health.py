"""Health check endpoints.

Provides endpoints for monitoring service health, readiness and metrics.
"""

from fastapi import APIRouter, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from giftflare.infrastructure.metrics import get_metrics_bytes, get_metrics_content_type

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    service: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Check service health.

    Returns:
        Health status with service name and version.
    """
    return HealthResponse(
        status="healthy",
        service="giftflare-orders",
        version=request.app.version,
    )


@router.get("/ready")
async def readiness_check(request: Request) -> JSONResponse:
    """Check if service is ready to accept requests.

    Ready once startup has wired the order and delivery services.
    """
    state = request.app.state
    if getattr(state, "order_service", None) is None or getattr(
        state, "delivery_service", None
    ) is None:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "starting"},
        )
    return JSONResponse(content={"status": "ready"})


@router.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=get_metrics_bytes(), media_type=get_metrics_content_type())
