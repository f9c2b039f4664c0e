"""Dashboard statistics and the AI classification audit log."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from src.middleware.auth import get_viewer
from src.models.user import ViewerContext

router = APIRouter(tags=["stats"])


@router.get("/stats")
async def grievance_stats(request: Request, viewer: ViewerContext = Depends(get_viewer)) -> dict[str, Any]:
    stats = await request.app.state.queries.stats(viewer)
    return {"stats": stats.to_wire()}


@router.get("/user-stats")
async def user_stats(request: Request, viewer: ViewerContext = Depends(get_viewer)) -> dict[str, Any]:
    stats = await request.app.state.queries.user_stats(viewer)
    return {"stats": stats.to_wire()}


@router.get("/ai/logs")
async def ai_logs(request: Request, viewer: ViewerContext = Depends(get_viewer)) -> dict[str, Any]:
    logs = await request.app.state.queries.ai_logs(viewer)
    return {"logs": [entry.to_wire() for entry in logs]}
