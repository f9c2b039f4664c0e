"""Department catalogue management.

Departments are stored as one ordered list.  Deleting a department does
not touch grievances already routed to it; they keep the old name.
"""

from __future__ import annotations

import asyncio
from typing import Final

import structlog

from src.models.base import utcnow
from src.models.department import Department
from src.models.user import ViewerContext
from src.services.errors import NotFoundError, UnauthorizedError, ValidationError
from src.services.repository import GrievanceRepository

logger = structlog.get_logger(__name__)

DEFAULT_DEPARTMENTS: Final[tuple[tuple[str, str], ...]] = (
    (
        "Accounts",
        "Handles all fee payments, financial documents, scholarships, refunds, and student billing matters",
    ),
    (
        "IT Section",
        "Manages student and faculty accounts, WiFi access, computer labs, software issues, and technical support",
    ),
    (
        "Housekeeping",
        "Responsible for cleaning and maintenance of classrooms, labs, corridors, restrooms, and all college premises",
    ),
    (
        "Security",
        "Handles lost and found items, security cameras, access control, campus safety, and security concerns",
    ),
)


def _require_admin(actor: ViewerContext) -> None:
    if not actor.is_admin:
        raise UnauthorizedError("Unauthorized. Admin access required.")


def _clean(name: str, description: str) -> tuple[str, str]:
    name, description = (name or "").strip(), (description or "").strip()
    if not name or not description:
        raise ValidationError("Name and description are required")
    return name, description


class DepartmentService:
    __slots__ = ("_lock", "_repo")

    def __init__(self, repo: GrievanceRepository) -> None:
        self._repo = repo
        self._lock = asyncio.Lock()

    async def list(self) -> list[Department]:
        return await self._repo.list_departments()

    async def create(self, name: str, description: str, actor: ViewerContext) -> Department:
        _require_admin(actor)
        name, description = _clean(name, description)

        async with self._lock:
            departments = await self._repo.list_departments()
            if any(d.name == name for d in departments):
                raise ValidationError("Department already exists")
            department = Department(name=name, description=description)
            departments.append(department)
            await self._repo.save_departments(departments)

        logger.info("departments.created", department_id=department.id, name=name)
        return department

    async def update(self, department_id: str, name: str, description: str, actor: ViewerContext) -> Department:
        _require_admin(actor)
        name, description = _clean(name, description)

        async with self._lock:
            departments = await self._repo.list_departments()
            index = next((i for i, d in enumerate(departments) if d.id == department_id), None)
            if index is None:
                raise NotFoundError("Department not found")
            if any(d.name == name and d.id != department_id for d in departments):
                raise ValidationError("Department already exists")

            updated = departments[index].model_copy(
                update={"name": name, "description": description, "updated_at": utcnow()},
            )
            departments[index] = updated
            await self._repo.save_departments(departments)

        logger.info("departments.updated", department_id=department_id, name=name)
        return updated

    async def delete(self, department_id: str, actor: ViewerContext) -> None:
        _require_admin(actor)

        async with self._lock:
            departments = await self._repo.list_departments()
            remaining = [d for d in departments if d.id != department_id]
            if len(remaining) == len(departments):
                raise NotFoundError("Department not found")
            await self._repo.save_departments(remaining)

        logger.info("departments.deleted", department_id=department_id)

    async def seed_defaults(self) -> int:
        """Write the default catalogue if none exists; return how many were added."""
        async with self._lock:
            if await self._repo.list_departments():
                return 0
            departments = [Department(name=name, description=description) for name, description in DEFAULT_DEPARTMENTS]
            await self._repo.save_departments(departments)

        logger.info("departments.seeded", count=len(departments))
        return len(departments)
