"""Request bodies accepted by the HTTP API.

Fields default to empty values so that blank or missing input reaches
the services and is rejected there with a 400 and a readable message,
rather than as a schema error.
"""

from __future__ import annotations

from src.models.base import CamelModel
from src.models.enums import Role


class SignupRequest(CamelModel):
    name: str = ""
    email: str = ""
    password: str = ""
    role: str = Role.STUDENT
    department: str | None = None


class LoginRequest(CamelModel):
    email: str = ""
    password: str = ""


class SubmitGrievanceRequest(CamelModel):
    title: str = ""
    description: str = ""
    is_anonymous: bool = False
    manual_department: str | None = None
    attachment: str | None = None


class StatusUpdateRequest(CamelModel):
    status: str = ""


class CommentRequest(CamelModel):
    comment: str = ""


class DepartmentRequest(CamelModel):
    name: str = ""
    description: str = ""
