"""Read side: listing, lookup, statistics and AI logs.

Visibility rules applied here:

* HODs only ever see grievances of their own department.
* Viewers who are neither admin nor HOD receive anonymous grievances
  with the submitter email and id hidden, their own included.
* Statistics and AI logs are for admin/HOD only.
"""

from __future__ import annotations

from collections import Counter

import structlog

from src.models.enums import FILTER_ALL, GrievanceStatus, Priority
from src.models.grievance import AIClassificationLog, Grievance, GrievanceFilters, GrievanceStats, UserStats
from src.models.user import ViewerContext
from src.services.errors import NotFoundError, UnauthorizedError
from src.services.repository import GLOBAL_INDEX, GrievanceRepository, user_index

logger = structlog.get_logger(__name__)


def _active(value: str | None) -> bool:
    return bool(value) and value != FILTER_ALL


def _visible(grievance: Grievance, viewer: ViewerContext) -> Grievance:
    return grievance if viewer.is_privileged else grievance.redacted()


def _status_counts(grievances: list[Grievance]) -> Counter[GrievanceStatus]:
    return Counter(grievance.status for grievance in grievances)


class GrievanceQueryService:
    __slots__ = ("_ai_log_limit", "_repo")

    def __init__(self, repo: GrievanceRepository, *, ai_log_limit: int = 50) -> None:
        self._repo = repo
        self._ai_log_limit = ai_log_limit

    async def list_grievances(self, filters: GrievanceFilters, viewer: ViewerContext) -> list[Grievance]:
        if filters.user_only:
            if not viewer.is_authenticated:
                return []
            grievances = await self._repo.list_by_index(user_index(viewer.user_id))
        else:
            grievances = await self._repo.list_by_index(GLOBAL_INDEX)

        if viewer.is_hod:
            grievances = [g for g in grievances if g.department == viewer.department]
        elif _active(filters.department):
            grievances = [g for g in grievances if g.department == filters.department]

        if _active(filters.priority):
            grievances = [g for g in grievances if g.priority == filters.priority]
        if _active(filters.status):
            grievances = [g for g in grievances if g.status == filters.status]

        return [_visible(g, viewer) for g in grievances]

    async def get(self, grievance_id: str, viewer: ViewerContext) -> Grievance:
        grievance = await self._repo.get(grievance_id)
        if grievance is None:
            raise NotFoundError("Grievance not found")
        return _visible(grievance, viewer)

    async def stats(self, viewer: ViewerContext) -> GrievanceStats:
        if not viewer.is_privileged:
            raise UnauthorizedError("Unauthorized. Admin or HOD access required.")

        grievances = await self._repo.list_by_index(GLOBAL_INDEX)
        if viewer.is_hod:
            grievances = [g for g in grievances if g.department == viewer.department]

        priorities = Counter(g.priority for g in grievances)
        statuses = _status_counts(grievances)
        return GrievanceStats(
            total=len(grievances),
            high_priority=priorities[Priority.HIGH],
            medium_priority=priorities[Priority.MEDIUM],
            low_priority=priorities[Priority.LOW],
            pending=statuses[GrievanceStatus.PENDING],
            in_progress=statuses[GrievanceStatus.IN_PROGRESS],
            resolved=statuses[GrievanceStatus.RESOLVED],
            rejected=statuses[GrievanceStatus.REJECTED],
            by_department=dict(Counter(g.department for g in grievances)),
        )

    async def user_stats(self, viewer: ViewerContext) -> UserStats:
        if not viewer.is_authenticated:
            raise UnauthorizedError("Unauthorized. Please login.")

        grievances = await self._repo.list_by_index(user_index(viewer.user_id))
        statuses = _status_counts(grievances)
        return UserStats(
            total=len(grievances),
            pending=statuses[GrievanceStatus.PENDING],
            in_progress=statuses[GrievanceStatus.IN_PROGRESS],
            resolved=statuses[GrievanceStatus.RESOLVED],
            rejected=statuses[GrievanceStatus.REJECTED],
        )

    async def ai_logs(self, viewer: ViewerContext) -> list[AIClassificationLog]:
        """Newest AI logs, capped before HOD department scoping."""
        if not viewer.is_privileged:
            raise UnauthorizedError("Unauthorized. Admin or HOD access required.")

        logs = (await self._repo.list_ai_logs())[: self._ai_log_limit]
        if viewer.is_hod:
            logs = [log for log in logs if log.classification.department == viewer.department]
        logger.debug("grievance.ai_logs_listed", count=len(logs), role=viewer.role)
        return logs
