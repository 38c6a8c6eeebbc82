"""
Health check endpoints for the Statement Dispatch Service.
"""
import time
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.core.logging import get_logger

router = APIRouter()
logger = get_logger(__name__)


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    uptime_seconds: float
    timestamp: datetime
    service_name: str


class ReadinessResponse(HealthResponse):
    """Readiness response model."""

    checks: Dict[str, bool]
    pending_messages: int
    circuits: Dict[str, Dict[str, Any]] = {}


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """
    Basic liveness check.

    Returns service status, version and uptime.
    """
    settings = request.app.state.settings
    start_time = getattr(request.app.state, "start_time", time.time())

    return HealthResponse(
        status="healthy",
        version=settings.service_version,
        uptime_seconds=time.time() - start_time,
        timestamp=datetime.utcnow(),
        service_name=settings.service_name,
    )


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse}},
)
async def readiness_check(request: Request):
    """
    Readiness check: stores bound and dispatcher running.

    Answers 503 while either is down, so the gateway can hold messages.
    Circuit states of the outbound clients are reported but do not affect
    readiness.
    """
    settings = request.app.state.settings
    store = getattr(request.app.state, "store", None)
    dispatcher = getattr(request.app.state, "dispatcher", None)
    start_time = getattr(request.app.state, "start_time", time.time())
    circuits = {
        client.service_name: client.get_circuit_status()
        for client in getattr(request.app.state, "service_clients", [])
    }

    checks = {
        "datastore": bool(store is not None and store.is_bound),
        "dispatcher": bool(dispatcher is not None and dispatcher.is_running),
    }
    ready = all(checks.values())

    response = ReadinessResponse(
        status="ready" if ready else "not_ready",
        version=settings.service_version,
        uptime_seconds=time.time() - start_time,
        timestamp=datetime.utcnow(),
        service_name=settings.service_name,
        checks=checks,
        pending_messages=dispatcher.pending if dispatcher is not None else 0,
        circuits=circuits,
    )

    if not ready:
        logger.warning("Readiness check failed", checks=checks)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(mode="json"),
        )
    return response
