"""User administration endpoints (admin only)."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from src.middleware.auth import get_viewer
from src.models.user import ViewerContext

router = APIRouter(prefix="/users", tags=["users"])


@router.get("")
async def list_users(request: Request, viewer: ViewerContext = Depends(get_viewer)) -> dict[str, Any]:
    users = await request.app.state.identity.list_users(viewer)
    return {"users": [user.to_wire() for user in users]}


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    request: Request,
    viewer: ViewerContext = Depends(get_viewer),
) -> dict[str, Any]:
    await request.app.state.identity.delete_user(user_id, viewer)
    return {"success": True}
