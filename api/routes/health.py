"""Health check and metrics endpoints."""

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel

from connectors.source_base import UnconfiguredSourceAdapter
from core import __version__
from core.observability.metrics import get_metrics


router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str
    services: Dict[str, str]


def _source_state(adapter) -> str:
    if adapter is None:
        return "unknown"
    if isinstance(adapter, UnconfiguredSourceAdapter):
        return "not_configured"
    return "configured"


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint.

    Reports whether each source is wired; sources are not probed.
    """
    engine = getattr(request.app.state, "engine", None)
    return HealthResponse(
        status="healthy",
        timestamp=datetime.utcnow().isoformat(),
        version=__version__,
        services={
            "api": "up",
            "source_a": _source_state(engine.source_a if engine else None),
            "source_b": _source_state(engine.source_b if engine else None),
        }
    )


@router.get("/ready")
async def readiness_check(request: Request, response: Response) -> Dict[str, str]:
    """Readiness probe for Kubernetes."""
    if getattr(request.app.state, "engine", None) is None:
        response.status_code = 503
        return {"status": "starting"}
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> Dict[str, str]:
    """Liveness probe for Kubernetes."""
    return {"status": "alive"}


@router.get("/metrics")
async def metrics() -> Dict[str, Any]:
    """In-process fetch, report and timing metrics."""
    return get_metrics().get_summary()
