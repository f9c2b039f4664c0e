"""Account endpoints: signup, login and logout."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from src.middleware.auth import bearer_token
from src.models.request import LoginRequest, SignupRequest

router = APIRouter(tags=["auth"])


@router.post("/signup")
async def signup(body: SignupRequest, request: Request) -> dict[str, Any]:
    user = await request.app.state.identity.signup(
        name=body.name,
        email=body.email,
        password=body.password,
        role=body.role,
        department=body.department,
    )
    return {"success": True, "user": user.to_wire()}


@router.post("/login")
async def login(body: LoginRequest, request: Request) -> dict[str, Any]:
    token, user = await request.app.state.identity.login(body.email, body.password)
    return {"success": True, "accessToken": token, "user": user.to_wire()}


@router.post("/logout")
async def logout(request: Request, token: str | None = Depends(bearer_token)) -> dict[str, Any]:
    if token:
        await request.app.state.identity.logout(token)
    return {"success": True}
