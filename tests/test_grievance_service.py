"""Tests for grievance submission, status transitions and comments."""

from __future__ import annotations

import asyncio
import re

import pytest
from conftest import FailingEmailProvider, RecordingEmailProvider, make_viewer, register

from src.models.enums import ClassificationMethod, GrievanceStatus, Priority, Role
from src.models.grievance import ANONYMOUS_ID, ANONYMOUS_NAME
from src.models.user import ViewerContext
from src.services.classifier import GrievanceClassifier
from src.services.errors import NotFoundError, UnauthorizedError, ValidationError
from src.services.grievance_service import GrievanceService, new_grievance_id
from src.services.identity import IdentityService
from src.services.notifications import NotificationService
from src.services.repository import GLOBAL_INDEX, GrievanceRepository, user_index


class TestGrievanceId:
    def test_format(self) -> None:
        assert re.fullmatch(r"\d{13}-[0-9a-f]{12}", new_grievance_id())

    def test_unique(self) -> None:
        assert len({new_grievance_id() for _ in range(1000)}) == 1000


# -----------------------------------------------------------------------
# submit
# -----------------------------------------------------------------------


class TestSubmit:
    async def test_auto_classified_submission(
        self,
        grievance_service: GrievanceService,
        seeded_repo: GrievanceRepository,
        student: ViewerContext,
    ) -> None:
        grievance, classification = await grievance_service.submit(
            title="WiFi not working in IT section lab",
            description="Urgent: no connectivity since morning",
            submitter=student,
        )
        assert grievance.department == "IT Section"
        assert grievance.priority == Priority.HIGH
        assert grievance.status == GrievanceStatus.PENDING
        assert grievance.submitter_id == student.user_id
        assert grievance.submitter_email == student.email
        assert grievance.created_at == grievance.updated_at
        assert classification.method == ClassificationMethod.FALLBACK

        stored = await seeded_repo.get(grievance.id)
        assert stored is not None and stored.title == grievance.title
        assert await seeded_repo.index_ids(GLOBAL_INDEX) == [grievance.id]
        assert await seeded_repo.index_ids(user_index(student.user_id)) == [grievance.id]

        logs = await seeded_repo.list_ai_logs()
        assert len(logs) == 1, "every non-manual submission writes exactly one AI log"
        assert logs[0].grievance_id == grievance.id

    async def test_manual_department(
        self,
        grievance_service: GrievanceService,
        seeded_repo: GrievanceRepository,
        student: ViewerContext,
    ) -> None:
        grievance, classification = await grievance_service.submit(
            title="Broken chair",
            description="Urgent repair needed",
            submitter=student,
            manual_department="Housekeeping",
        )
        assert grievance.department == "Housekeeping"
        assert grievance.priority == Priority.MEDIUM, "manual selection always yields Medium"
        assert grievance.manually_classified is True
        assert classification.confidence == 1.0
        assert classification.method == ClassificationMethod.MANUAL
        assert await seeded_repo.list_ai_logs() == [], "manual submissions are not AI-logged"

    async def test_blank_manual_department_is_ignored(
        self,
        grievance_service: GrievanceService,
        student: ViewerContext,
    ) -> None:
        _, classification = await grievance_service.submit(
            title="Dusty room", description="please clean", submitter=student, manual_department="  "
        )
        assert classification.method == ClassificationMethod.FALLBACK

    @pytest.mark.parametrize(("title", "description"), [("", "text"), ("title", "   "), ("  ", "")])
    async def test_blank_fields_rejected(
        self,
        grievance_service: GrievanceService,
        seeded_repo: GrievanceRepository,
        student: ViewerContext,
        title: str,
        description: str,
    ) -> None:
        with pytest.raises(ValidationError):
            await grievance_service.submit(title=title, description=description, submitter=student)
        assert await seeded_repo.index_ids(GLOBAL_INDEX) == []

    async def test_anonymous_flag_by_signed_in_user(
        self,
        grievance_service: GrievanceService,
        seeded_repo: GrievanceRepository,
        student: ViewerContext,
    ) -> None:
        grievance, _ = await grievance_service.submit(
            title="Harassment", description="Reporting anonymously", submitter=student, is_anonymous=True
        )
        assert grievance.is_anonymous is True
        assert grievance.submitter_name == ANONYMOUS_NAME
        stored = await seeded_repo.get(grievance.id)
        assert stored is not None
        assert stored.submitter_email == student.email, "the stored record keeps the true submitter"
        assert stored.submitter_id == student.user_id
        assert await seeded_repo.index_ids(user_index(student.user_id)) == [], (
            "anonymous submissions stay out of the personal index"
        )
        assert await seeded_repo.index_ids(GLOBAL_INDEX) == [grievance.id]

    async def test_unauthenticated_submitter(
        self,
        grievance_service: GrievanceService,
        anonymous_viewer: ViewerContext,
    ) -> None:
        grievance, _ = await grievance_service.submit(
            title="Lights", description="Corridor lights off", submitter=anonymous_viewer
        )
        assert grievance.submitter_id == ANONYMOUS_ID

    async def test_global_index_is_newest_first(
        self,
        grievance_service: GrievanceService,
        seeded_repo: GrievanceRepository,
        student: ViewerContext,
    ) -> None:
        first, _ = await grievance_service.submit(title="one", description="one", submitter=student)
        second, _ = await grievance_service.submit(title="two", description="two", submitter=student)
        assert await seeded_repo.index_ids(GLOBAL_INDEX) == [second.id, first.id]

    async def test_concurrent_submissions_all_indexed(
        self,
        grievance_service: GrievanceService,
        seeded_repo: GrievanceRepository,
        student: ViewerContext,
    ) -> None:
        results = await asyncio.gather(
            *(grievance_service.submit(title=f"t{i}", description="d", submitter=student) for i in range(20))
        )
        ids = await seeded_repo.index_ids(GLOBAL_INDEX)
        assert sorted(ids) == sorted(g.id for g, _ in results)

    async def test_notifications_sent_to_submitter_and_staff(
        self,
        grievance_service: GrievanceService,
        identity: IdentityService,
        email: RecordingEmailProvider,
        student: ViewerContext,
    ) -> None:
        await register(identity, Role.ADMIN, "admin@college.edu")
        await register(identity, Role.HOD, "it.hod@college.edu", department="IT Section")
        await register(identity, Role.HOD, "acc.hod@college.edu", department="Accounts")

        await grievance_service.submit(
            title="WiFi", description="x", submitter=student, manual_department="IT Section"
        )
        assert sorted(email.recipients()) == sorted(
            [student.email, "admin@college.edu", "it.hod@college.edu"]
        ), "the HOD of another department must not be alerted"

    async def test_anonymous_submission_sends_no_confirmation(
        self,
        grievance_service: GrievanceService,
        email: RecordingEmailProvider,
        student: ViewerContext,
    ) -> None:
        await grievance_service.submit(title="t", description="d", submitter=student, is_anonymous=True)
        assert student.email not in email.recipients()

    async def test_email_failure_does_not_fail_submit(
        self,
        seeded_repo: GrievanceRepository,
        identity: IdentityService,
        student: ViewerContext,
    ) -> None:
        provider = FailingEmailProvider()
        service = GrievanceService(
            seeded_repo, GrievanceClassifier(), NotificationService(provider, background=False), identity
        )
        grievance, _ = await service.submit(title="t", description="d", submitter=student)
        assert provider.attempts == 1
        assert await seeded_repo.get(grievance.id) is not None


# -----------------------------------------------------------------------
# update_status
# -----------------------------------------------------------------------


class TestUpdateStatus:
    async def test_admin_updates_status(
        self,
        grievance_service: GrievanceService,
        seeded_repo: GrievanceRepository,
        email: RecordingEmailProvider,
        student: ViewerContext,
        admin: ViewerContext,
    ) -> None:
        grievance, _ = await grievance_service.submit(title="t", description="d", submitter=student)
        email.sent.clear()

        updated = await grievance_service.update_status(grievance.id, "In Progress", admin)
        assert updated.status == GrievanceStatus.IN_PROGRESS
        assert updated.updated_at >= grievance.updated_at

        stored = await seeded_repo.get(grievance.id)
        assert stored is not None and stored.status == GrievanceStatus.IN_PROGRESS
        assert email.recipients() == [student.email]
        assert "In Progress" in email.sent[0][1]

    async def test_hod_outside_department_is_allowed(
        self,
        grievance_service: GrievanceService,
        student: ViewerContext,
    ) -> None:
        grievance, _ = await grievance_service.submit(
            title="t", description="d", submitter=student, manual_department="Accounts"
        )
        hod = make_viewer(Role.HOD, user_id="hod-it", department="IT Section")
        updated = await grievance_service.update_status(grievance.id, "Resolved", hod)
        assert updated.status == GrievanceStatus.RESOLVED

    @pytest.mark.parametrize("role", [Role.STUDENT, Role.TEACHER])
    async def test_non_privileged_rejected_without_mutation(
        self,
        grievance_service: GrievanceService,
        seeded_repo: GrievanceRepository,
        student: ViewerContext,
        role: Role,
    ) -> None:
        grievance, _ = await grievance_service.submit(title="t", description="d", submitter=student)
        with pytest.raises(UnauthorizedError):
            await grievance_service.update_status(grievance.id, "Resolved", make_viewer(role))
        stored = await seeded_repo.get(grievance.id)
        assert stored is not None and stored.status == GrievanceStatus.PENDING

    async def test_anonymous_viewer_rejected(
        self,
        grievance_service: GrievanceService,
        anonymous_viewer: ViewerContext,
    ) -> None:
        with pytest.raises(UnauthorizedError):
            await grievance_service.update_status("whatever", "Resolved", anonymous_viewer)

    @pytest.mark.parametrize("status", ["Done", "resolved", "", "In progress"])
    async def test_non_canonical_status_rejected(
        self,
        grievance_service: GrievanceService,
        seeded_repo: GrievanceRepository,
        student: ViewerContext,
        admin: ViewerContext,
        status: str,
    ) -> None:
        grievance, _ = await grievance_service.submit(title="t", description="d", submitter=student)
        with pytest.raises(ValidationError):
            await grievance_service.update_status(grievance.id, status, admin)
        stored = await seeded_repo.get(grievance.id)
        assert stored is not None and stored.status == GrievanceStatus.PENDING

    async def test_unknown_id(self, grievance_service: GrievanceService, admin: ViewerContext) -> None:
        with pytest.raises(NotFoundError):
            await grievance_service.update_status("missing", "Resolved", admin)

    async def test_anonymous_grievance_gets_no_status_email(
        self,
        grievance_service: GrievanceService,
        email: RecordingEmailProvider,
        student: ViewerContext,
        admin: ViewerContext,
    ) -> None:
        grievance, _ = await grievance_service.submit(title="t", description="d", submitter=student, is_anonymous=True)
        email.sent.clear()
        await grievance_service.update_status(grievance.id, "Rejected", admin)
        assert email.sent == []


# -----------------------------------------------------------------------
# add_comment
# -----------------------------------------------------------------------


class TestAddComment:
    async def test_privileged_comment_notifies_submitter(
        self,
        grievance_service: GrievanceService,
        seeded_repo: GrievanceRepository,
        email: RecordingEmailProvider,
        student: ViewerContext,
        it_hod: ViewerContext,
    ) -> None:
        grievance, _ = await grievance_service.submit(
            title="t", description="d", submitter=student, manual_department="IT Section"
        )
        email.sent.clear()

        comment = await grievance_service.add_comment(grievance.id, "  Looking into it  ", it_hod)
        assert comment.text == "Looking into it"
        assert comment.is_privileged is True
        assert comment.author_role == Role.HOD

        stored = await seeded_repo.get(grievance.id)
        assert stored is not None
        assert [c.id for c in stored.comments] == [comment.id]
        assert stored.updated_at == comment.created_at
        assert email.recipients() == [student.email]

    async def test_student_comment_not_emailed(
        self,
        grievance_service: GrievanceService,
        email: RecordingEmailProvider,
        student: ViewerContext,
    ) -> None:
        grievance, _ = await grievance_service.submit(title="t", description="d", submitter=student)
        email.sent.clear()
        comment = await grievance_service.add_comment(grievance.id, "any update?", student)
        assert comment.is_privileged is False
        assert email.sent == []

    async def test_requires_authentication(
        self,
        grievance_service: GrievanceService,
        student: ViewerContext,
        anonymous_viewer: ViewerContext,
    ) -> None:
        grievance, _ = await grievance_service.submit(title="t", description="d", submitter=student)
        with pytest.raises(UnauthorizedError):
            await grievance_service.add_comment(grievance.id, "hello", anonymous_viewer)

    async def test_blank_text(self, grievance_service: GrievanceService, student: ViewerContext) -> None:
        grievance, _ = await grievance_service.submit(title="t", description="d", submitter=student)
        with pytest.raises(ValidationError):
            await grievance_service.add_comment(grievance.id, "   ", student)

    async def test_unknown_id(self, grievance_service: GrievanceService, student: ViewerContext) -> None:
        with pytest.raises(NotFoundError):
            await grievance_service.add_comment("missing", "hello", student)

    async def test_concurrent_comments_are_all_kept(
        self,
        grievance_service: GrievanceService,
        seeded_repo: GrievanceRepository,
        student: ViewerContext,
        admin: ViewerContext,
    ) -> None:
        grievance, _ = await grievance_service.submit(title="t", description="d", submitter=student)
        await asyncio.gather(
            *(grievance_service.add_comment(grievance.id, f"comment {i}", admin) for i in range(10))
        )
        stored = await seeded_repo.get(grievance.id)
        assert stored is not None and len(stored.comments) == 10

    async def test_locks_do_not_accumulate(
        self,
        grievance_service: GrievanceService,
        seeded_repo: GrievanceRepository,
        student: ViewerContext,
        admin: ViewerContext,
    ) -> None:
        for i in range(50):
            with pytest.raises(NotFoundError):
                await grievance_service.add_comment(f"bogus-{i}", "hello", student)
            with pytest.raises(NotFoundError):
                await grievance_service.update_status(f"bogus-{i}", "Resolved", admin)
        assert len(grievance_service._locks) == 0, "unknown ids must not leave locks behind"

        grievance, _ = await grievance_service.submit(title="t", description="d", submitter=student)
        await grievance_service.add_comment(grievance.id, "hello", student)
        await grievance_service.update_status(grievance.id, "Resolved", admin)
        assert len(grievance_service._locks) == 0, "locks are released once no one is using them"
        assert len(seeded_repo._index_locks) == 0

    async def test_email_failure_does_not_fail_comment(
        self,
        seeded_repo: GrievanceRepository,
        identity: IdentityService,
        student: ViewerContext,
        admin: ViewerContext,
    ) -> None:
        service = GrievanceService(
            seeded_repo,
            GrievanceClassifier(),
            NotificationService(FailingEmailProvider(), background=False),
            identity,
        )
        grievance, _ = await service.submit(title="t", description="d", submitter=student)
        comment = await service.add_comment(grievance.id, "resolved soon", admin)
        updated = await service.update_status(grievance.id, "Resolved", admin)
        assert comment.text == "resolved soon"
        assert updated.status == GrievanceStatus.RESOLVED
