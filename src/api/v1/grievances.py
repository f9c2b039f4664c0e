"""Grievance endpoints: submit, list, read, status updates and comments.

The caller is resolved by :func:`~src.middleware.auth.get_viewer`;
authorisation and redaction happen in the services.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Request

from src.middleware.auth import get_viewer
from src.models.grievance import GrievanceFilters
from src.models.request import CommentRequest, StatusUpdateRequest, SubmitGrievanceRequest
from src.models.user import ViewerContext

router = APIRouter(prefix="/grievances", tags=["grievances"])


@router.post("")
async def submit_grievance(
    body: SubmitGrievanceRequest,
    request: Request,
    viewer: ViewerContext = Depends(get_viewer),
) -> dict[str, Any]:
    """Classify and store a new grievance.

    Anonymous callers may submit; ``isAnonymous`` hides the submitter from
    non-privileged readers, the submitter included.  ``manualDepartment``
    skips classification.
    """
    grievance, classification = await request.app.state.grievances.submit(
        title=body.title,
        description=body.description,
        submitter=viewer,
        is_anonymous=body.is_anonymous,
        manual_department=body.manual_department,
        attachment=body.attachment,
    )
    return {
        "success": True,
        "grievance": (grievance if viewer.is_privileged else grievance.redacted()).to_wire(),
        "classification": classification.to_wire(),
    }


@router.get("")
async def list_grievances(
    request: Request,
    user_only: bool = Query(default=False, alias="userOnly"),
    priority: str | None = None,
    status: str | None = None,
    department: str | None = None,
    viewer: ViewerContext = Depends(get_viewer),
) -> dict[str, Any]:
    filters = GrievanceFilters(user_only=user_only, priority=priority, status=status, department=department)
    grievances = await request.app.state.queries.list_grievances(filters, viewer)
    return {"grievances": [grievance.to_wire() for grievance in grievances]}


@router.get("/{grievance_id}")
async def get_grievance(
    grievance_id: str,
    request: Request,
    viewer: ViewerContext = Depends(get_viewer),
) -> dict[str, Any]:
    grievance = await request.app.state.queries.get(grievance_id, viewer)
    return {"grievance": grievance.to_wire()}


@router.put("/{grievance_id}/status")
async def update_status(
    grievance_id: str,
    body: StatusUpdateRequest,
    request: Request,
    viewer: ViewerContext = Depends(get_viewer),
) -> dict[str, Any]:
    grievance = await request.app.state.grievances.update_status(grievance_id, body.status, viewer)
    return {"success": True, "grievance": grievance.to_wire()}


@router.post("/{grievance_id}/comment")
async def add_comment(
    grievance_id: str,
    body: CommentRequest,
    request: Request,
    viewer: ViewerContext = Depends(get_viewer),
) -> dict[str, Any]:
    comment = await request.app.state.grievances.add_comment(grievance_id, body.comment, viewer)
    return {"success": True, "comment": comment.to_wire()}
