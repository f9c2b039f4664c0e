"""Tests for wire-format models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from src.models.enums import GrievanceStatus, Priority, Role
from src.models.grievance import ANONYMOUS_ID, Classification, Grievance
from src.models.user import StoredUser, User, ViewerContext


def _grievance(**overrides) -> Grievance:
    fields = {
        "id": "1718000000000-abcdef012345",
        "title": "Fan not working",
        "description": "Ceiling fan in room 12",
        "department": "Housekeeping",
        "priority": Priority.MEDIUM,
        "submitter_id": "u1",
        "submitter_name": "Priya",
        "submitter_email": "priya@college.edu",
    }
    fields.update(overrides)
    return Grievance(**fields)


class TestGrievanceWire:
    def test_camel_case_keys(self) -> None:
        wire = _grievance().to_wire()
        for key in ("isAnonymous", "submitterId", "submitterEmail", "createdAt", "updatedAt", "manuallyClassified"):
            assert key in wire, f"wire format should contain {key}"
        assert wire["status"] == "Pending"
        assert wire["comments"] == []

    def test_parses_wire_format(self) -> None:
        original = _grievance(status=GrievanceStatus.IN_PROGRESS)
        parsed = Grievance.model_validate(original.to_wire())
        assert parsed == original

    def test_invalid_priority_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _grievance(priority="Urgent")


class TestRedaction:
    def test_named_grievance_untouched(self) -> None:
        grievance = _grievance()
        assert grievance.redacted() is grievance

    def test_anonymous_grievance_redacted(self) -> None:
        grievance = _grievance(is_anonymous=True, submitter_name="Anonymous")
        redacted = grievance.redacted()
        assert redacted.submitter_email is None
        assert redacted.submitter_id == ANONYMOUS_ID
        assert grievance.submitter_email == "priya@college.edu", "redaction must not mutate the original"


class TestClassification:
    @pytest.mark.parametrize("confidence", [-0.1, 1.01])
    def test_confidence_range(self, confidence: float) -> None:
        with pytest.raises(ValidationError):
            Classification(department="IT", priority=Priority.LOW, reason="r", confidence=confidence)


class TestViewerContext:
    def test_anonymous(self) -> None:
        viewer = ViewerContext.anonymous()
        assert viewer.is_authenticated is False
        assert viewer.is_privileged is False

    @pytest.mark.parametrize(
        ("role", "privileged"),
        [(Role.STUDENT, False), (Role.TEACHER, False), (Role.HOD, True), (Role.ADMIN, True)],
    )
    def test_privilege(self, role: Role, privileged: bool) -> None:
        viewer = ViewerContext.from_user(User(email="x@college.edu", name="X", role=role))
        assert viewer.is_authenticated is True
        assert viewer.is_privileged is privileged

    def test_stored_user_keeps_hash(self) -> None:
        stored = StoredUser(email="x@college.edu", name="X", password_hash="h")
        assert StoredUser.model_validate(stored.to_wire()).password_hash == "h"
