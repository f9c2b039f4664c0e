"""Department catalogue endpoints.  Listing is public; changes are admin-only."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from src.middleware.auth import get_viewer
from src.models.request import DepartmentRequest
from src.models.user import ViewerContext

router = APIRouter(prefix="/departments", tags=["departments"])


@router.get("")
async def list_departments(request: Request) -> dict[str, Any]:
    departments = await request.app.state.departments.list()
    return {"departments": [department.to_wire() for department in departments]}


@router.post("")
async def create_department(
    body: DepartmentRequest,
    request: Request,
    viewer: ViewerContext = Depends(get_viewer),
) -> dict[str, Any]:
    department = await request.app.state.departments.create(body.name, body.description, viewer)
    return {"success": True, "department": department.to_wire()}


@router.put("/{department_id}")
async def update_department(
    department_id: str,
    body: DepartmentRequest,
    request: Request,
    viewer: ViewerContext = Depends(get_viewer),
) -> dict[str, Any]:
    department = await request.app.state.departments.update(department_id, body.name, body.description, viewer)
    return {"success": True, "department": department.to_wire()}


@router.delete("/{department_id}")
async def delete_department(
    department_id: str,
    request: Request,
    viewer: ViewerContext = Depends(get_viewer),
) -> dict[str, Any]:
    await request.app.state.departments.delete(department_id, viewer)
    return {"success": True}
