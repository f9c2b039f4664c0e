from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from pydantic import Field

from src.models.base import CamelModel, utcnow


class Department(CamelModel):
    """A routing target for grievances.

    ``description`` is both the human-facing label and the only
    taxonomy signal the classifier sees.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    name: str
    description: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime | None = None
