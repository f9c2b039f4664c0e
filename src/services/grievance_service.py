"""Grievance submission and lifecycle transitions.

:class:`GrievanceService` is the write side of the pipeline:

1. **submit** -- validate, classify (or take the submitter's manual
   department), persist, index, write the AI audit log, notify.
2. **update_status** -- admin/HOD moves a grievance through the fixed
   four-state set.
3. **add_comment** -- any signed-in user appends to the thread.

Every operation receives the acting :class:`ViewerContext` explicitly.
Mutations of one grievance are serialised per id with an asyncio lock,
so concurrent comments or status changes in this process cannot drop
each other's writes.  A lock exists only for a known id and only while
in use.  Notifications run only after the state change is persisted and
can never fail the operation.
"""

from __future__ import annotations

import asyncio
import time
import weakref
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog

from src.models.enums import GrievanceStatus
from src.models.grievance import (
    ANONYMOUS_ID,
    ANONYMOUS_NAME,
    AIClassificationLog,
    Classification,
    Comment,
    Grievance,
)
from src.models.base import utcnow
from src.models.user import ViewerContext
from src.services.classifier import GrievanceClassifier, manual_classification
from src.services.errors import NotFoundError, UnauthorizedError, ValidationError
from src.services.repository import GLOBAL_INDEX, GrievanceRepository, lock_for, user_index

if TYPE_CHECKING:
    from src.services.identity import IdentityService
    from src.services.notifications import NotificationService

logger = structlog.get_logger(__name__)


def new_grievance_id() -> str:
    """Millisecond timestamp plus 48 random bits, e.g. ``1718000000000-3f9a0c1d2e4b``."""
    return f"{time.time_ns() // 1_000_000}-{uuid4().hex[:12]}"


class GrievanceService:
    __slots__ = ("_classifier", "_identity", "_locks", "_notifier", "_repo")

    def __init__(
        self,
        repo: GrievanceRepository,
        classifier: GrievanceClassifier,
        notifier: NotificationService,
        identity: IdentityService,
    ) -> None:
        self._repo = repo
        self._classifier = classifier
        self._notifier = notifier
        self._identity = identity
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(
        self,
        *,
        title: str,
        description: str,
        submitter: ViewerContext,
        is_anonymous: bool = False,
        manual_department: str | None = None,
        attachment: str | None = None,
    ) -> tuple[Grievance, Classification]:
        """Create, classify, store and index a new grievance."""
        title, description = (title or "").strip(), (description or "").strip()
        if not title or not description:
            raise ValidationError("Title and description are required")

        manual_department = (manual_department or "").strip() or None
        if manual_department:
            classification = manual_classification(manual_department)
        else:
            departments = await self._repo.list_departments()
            classification = await self._classifier.classify(title, description, departments)

        now = utcnow()
        grievance = Grievance(
            id=new_grievance_id(),
            title=title,
            description=description,
            department=classification.department,
            priority=classification.priority,
            status=GrievanceStatus.PENDING,
            is_anonymous=is_anonymous,
            submitter_id=submitter.user_id or ANONYMOUS_ID,
            submitter_name=ANONYMOUS_NAME if is_anonymous else (submitter.name or "Unknown"),
            submitter_email=submitter.email,
            attachment=attachment,
            created_at=now,
            updated_at=now,
            manually_classified=manual_department is not None,
        )

        await self._repo.save(grievance)
        await self._repo.prepend_to_index(GLOBAL_INDEX, grievance.id)
        if submitter.is_authenticated and not is_anonymous:
            await self._repo.prepend_to_index(user_index(submitter.user_id), grievance.id)

        if not grievance.manually_classified:
            await self._repo.add_ai_log(
                AIClassificationLog(grievance_id=grievance.id, classification=classification),
            )

        logger.info(
            "grievance.submitted",
            grievance_id=grievance.id,
            department=grievance.department,
            priority=grievance.priority.value,
            method=classification.method.value,
            anonymous=is_anonymous,
        )

        await self._notify_submitted(grievance, classification)
        return grievance, classification

    async def _notify_submitted(self, grievance: Grievance, classification: Classification) -> None:
        try:
            staff = await self._identity.notification_recipients(grievance.department)
        except Exception:
            logger.warning("grievance.recipient_lookup_failed", grievance_id=grievance.id, exc_info=True)
            staff = []
        await self._notifier.grievance_submitted(grievance, classification, staff)

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def update_status(self, grievance_id: str, new_status: str, actor: ViewerContext) -> Grievance:
        if not actor.is_authenticated or not actor.is_privileged:
            raise UnauthorizedError("Unauthorized. Admin or HOD access required.")
        try:
            status = GrievanceStatus(new_status)
        except ValueError:
            raise ValidationError("Invalid status") from None

        if await self._repo.get(grievance_id) is None:
            raise NotFoundError("Grievance not found")
        async with lock_for(self._locks, grievance_id):
            grievance = await self._repo.get(grievance_id)
            if grievance is None:
                raise NotFoundError("Grievance not found")
            self._log_if_outside_department(actor, grievance, "update_status")

            old_status = grievance.status
            grievance.status = status
            grievance.updated_at = utcnow()
            await self._repo.save(grievance)

        logger.info(
            "grievance.status_updated",
            grievance_id=grievance_id,
            old_status=old_status.value,
            new_status=status.value,
            actor_id=actor.user_id,
            actor_role=actor.role,
        )
        await self._notifier.status_changed(grievance, old_status.value)
        return grievance

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    async def add_comment(self, grievance_id: str, text: str, actor: ViewerContext) -> Comment:
        if not actor.is_authenticated:
            raise UnauthorizedError("Unauthorized. Please login.")
        text = (text or "").strip()
        if not text:
            raise ValidationError("Comment text is required")

        if await self._repo.get(grievance_id) is None:
            raise NotFoundError("Grievance not found")
        async with lock_for(self._locks, grievance_id):
            grievance = await self._repo.get(grievance_id)
            if grievance is None:
                raise NotFoundError("Grievance not found")
            self._log_if_outside_department(actor, grievance, "add_comment")

            comment = Comment(
                text=text,
                author_id=actor.user_id,
                author_name=actor.name or "User",
                author_role=actor.role,
                is_privileged=actor.is_privileged,
            )
            grievance.comments.append(comment)
            grievance.updated_at = comment.created_at
            await self._repo.save(grievance)

        logger.info(
            "grievance.comment_added",
            grievance_id=grievance_id,
            comment_id=comment.id,
            author_role=comment.author_role.value,
        )
        if comment.is_privileged:
            await self._notifier.comment_added(grievance, comment)
        return comment

    @staticmethod
    def _log_if_outside_department(actor: ViewerContext, grievance: Grievance, action: str) -> None:
        # HODs are not restricted to their own department on writes; record it.
        if actor.is_hod and grievance.department != actor.department:
            logger.warning(
                "grievance.hod_outside_department",
                action=action,
                grievance_id=grievance.id,
                grievance_department=grievance.department,
                hod_department=actor.department,
            )
