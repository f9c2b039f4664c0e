"""Grievance, comment, classification and AI-log models.

A grievance is created once on submission and afterwards mutated only by
status changes and comment appends.  The stored record always keeps the
true submitter; anonymity is enforced at read time by
:meth:`Grievance.redacted`.
"""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from pydantic import Field

from src.models.base import CamelModel, utcnow
from src.models.enums import ClassificationMethod, GrievanceStatus, Priority, Role

ANONYMOUS_ID = "anonymous"
ANONYMOUS_NAME = "Anonymous"


class Classification(CamelModel):
    """Department/priority assignment for a grievance."""

    department: str
    priority: Priority
    reason: str
    confidence: float = Field(ge=0.0, le=1.0)
    method: ClassificationMethod = ClassificationMethod.AI


class Comment(CamelModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    text: str
    author_id: str
    author_name: str
    author_role: Role
    is_privileged: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class Grievance(CamelModel):
    id: str
    title: str
    description: str
    department: str
    priority: Priority
    status: GrievanceStatus = GrievanceStatus.PENDING
    is_anonymous: bool = False
    submitter_id: str = ANONYMOUS_ID
    submitter_name: str = ANONYMOUS_NAME
    submitter_email: str | None = None
    attachment: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    comments: list[Comment] = Field(default_factory=list)
    manually_classified: bool = False

    def redacted(self) -> Grievance:
        """Return a copy with submitter identity hidden if anonymous."""
        if not self.is_anonymous:
            return self
        return self.model_copy(update={"submitter_email": None, "submitter_id": ANONYMOUS_ID})


class AIClassificationLog(CamelModel):
    """Write-once audit entry for a non-manual classification."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    grievance_id: str
    classification: Classification
    timestamp: datetime = Field(default_factory=utcnow)


class GrievanceFilters(CamelModel):
    """Listing filters; ``None`` or ``"All"`` disables a predicate."""

    user_only: bool = False
    priority: str | None = None
    status: str | None = None
    department: str | None = None


class GrievanceStats(CamelModel):
    total: int = 0
    high_priority: int = 0
    medium_priority: int = 0
    low_priority: int = 0
    pending: int = 0
    in_progress: int = 0
    resolved: int = 0
    rejected: int = 0
    by_department: dict[str, int] = Field(default_factory=dict)


class UserStats(CamelModel):
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    resolved: int = 0
    rejected: int = 0
