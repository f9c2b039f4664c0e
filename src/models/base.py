"""Shared pydantic base for wire-facing models.

Python attributes are snake_case; the JSON wire format (and the stored
documents) use camelCase keys, e.g. ``is_anonymous`` <-> ``isAnonymous``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(UTC)


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump to a JSON-safe dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)
