"""User accounts and the per-request viewer context.

:class:`ViewerContext` is what every service call receives instead of
reading identity from ambient state.  An unauthenticated request is
represented by :meth:`ViewerContext.anonymous`, never by ``None``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

from pydantic import Field

from src.models.base import CamelModel, utcnow
from src.models.enums import Role


class User(CamelModel):
    """Public view of an account (no credentials)."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    email: str
    name: str
    role: Role = Role.STUDENT
    department: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class StoredUser(User):
    """Account record as persisted, including the password hash."""

    password_hash: str


@dataclass(slots=True, frozen=True)
class ViewerContext:
    user_id: str | None = None
    name: str | None = None
    email: str | None = None
    role: Role | None = None
    department: str | None = None

    @classmethod
    def anonymous(cls) -> ViewerContext:
        return cls()

    @classmethod
    def from_user(cls, user: User) -> ViewerContext:
        return cls(
            user_id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            department=user.department,
        )

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_hod(self) -> bool:
        return self.role == Role.HOD

    @property
    def is_privileged(self) -> bool:
        return self.is_admin or self.is_hod
