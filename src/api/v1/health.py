"""Liveness and readiness probes."""

from __future__ import annotations

import time
from datetime import datetime

import structlog
from fastapi import APIRouter, Request

from src.models.base import CamelModel, utcnow

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

_PROBE_KEY = "_health_check"


class HealthResponse(CamelModel):
    status: str
    timestamp: datetime
    version: str
    uptime_seconds: float


class ReadinessResponse(CamelModel):
    """Readiness check response with individual dependency statuses."""

    status: str
    checks: dict[str, str]


@router.get("")
async def health_check(request: Request) -> dict:
    """Liveness probe.  Does *not* check downstream dependencies."""
    start_time: float = getattr(request.app.state, "start_time", time.time())
    return HealthResponse(
        status="ok",
        timestamp=utcnow(),
        version=request.app.version,
        uptime_seconds=round(time.time() - start_time, 2),
    ).to_wire()


@router.get("/ready")
async def readiness_check(request: Request) -> dict:
    """Readiness probe: store round-trip, department catalogue, LLM and email wiring."""
    checks: dict[str, str] = {}
    ready = True

    store = request.app.state.store
    try:
        await store.set(_PROBE_KEY, "ok", ttl_seconds=10)
        if await store.get(_PROBE_KEY) == "ok":
            checks["store"] = f"ok ({store.backend_name})"
        else:
            checks["store"] = "degraded"
            ready = False
    except Exception as exc:
        checks["store"] = f"error: {type(exc).__name__}"
        ready = False

    departments = await request.app.state.departments.list() if ready else []
    checks["departments"] = f"ok ({len(departments)})" if departments else "empty"

    llm = getattr(request.app.state, "llm", None)
    checks["llm"] = f"ok ({llm.model_name})" if llm is not None else "fallback_only"
    checks["email"] = request.app.state.email_backend

    status = "ready" if ready else "degraded"
    logger.info("health.readiness_check", status=status, checks=checks)
    return ReadinessResponse(status=status, checks=checks).to_wire()
