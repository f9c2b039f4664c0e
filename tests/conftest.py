"""Shared fixtures.

The environment is pinned before anything imports ``config.settings`` so
the application runs on the in-memory store, keyword classification and
the log-only email provider.  No test needs network access.
"""

from __future__ import annotations

import os

os.environ["REDIS_URL"] = ""
os.environ["GEMINI_API_KEY"] = ""
os.environ["SMTP_USERNAME"] = ""
os.environ["SMTP_PASSWORD"] = ""
os.environ["ANON_KEY"] = "public-anon-key"
os.environ["RATE_LIMIT_PER_MINUTE"] = "100000"
os.environ["LOG_FORMAT"] = "console"
os.environ["GRIEVEASE_NOTIFY_IN_BACKGROUND"] = "false"

import pytest

from src.models.department import Department
from src.models.enums import Role
from src.models.user import User, ViewerContext
from src.services.classifier import GrievanceClassifier
from src.services.departments import DEFAULT_DEPARTMENTS
from src.services.grievance_query import GrievanceQueryService
from src.services.grievance_service import GrievanceService
from src.services.identity import IdentityService
from src.services.notifications import NotificationService
from src.services.repository import GrievanceRepository
from src.services.store import KeyValueStore


class RecordingEmailProvider:
    """Keeps every message instead of sending it."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, to: str, subject: str, html: str) -> None:
        self.sent.append((to, subject, html))

    def recipients(self) -> list[str]:
        return [to for to, _, _ in self.sent]


class FailingEmailProvider:
    def __init__(self) -> None:
        self.attempts = 0

    async def send(self, to: str, subject: str, html: str) -> None:
        self.attempts += 1
        raise ConnectionError("SMTP server unreachable")


def make_viewer(
    role: Role = Role.STUDENT,
    *,
    user_id: str | None = None,
    department: str | None = None,
    name: str | None = None,
) -> ViewerContext:
    user_id = user_id or f"{role.value}-1"
    return ViewerContext(
        user_id=user_id,
        name=name or f"{role.value.title()} User",
        email=f"{user_id}@college.edu",
        role=role,
        department=department,
    )


@pytest.fixture
def store() -> KeyValueStore:
    return KeyValueStore.in_memory()


@pytest.fixture
def repo(store: KeyValueStore) -> GrievanceRepository:
    return GrievanceRepository(store)


@pytest.fixture
def departments() -> list[Department]:
    return [Department(name=name, description=description) for name, description in DEFAULT_DEPARTMENTS]


@pytest.fixture
async def seeded_repo(repo: GrievanceRepository, departments: list[Department]) -> GrievanceRepository:
    await repo.save_departments(departments)
    return repo


@pytest.fixture
def email() -> RecordingEmailProvider:
    return RecordingEmailProvider()


@pytest.fixture
def notifier(email: RecordingEmailProvider) -> NotificationService:
    return NotificationService(email, background=False)


@pytest.fixture
def identity(store: KeyValueStore) -> IdentityService:
    return IdentityService(store, anon_key="public-anon-key", session_ttl=3600)


@pytest.fixture
def grievance_service(
    seeded_repo: GrievanceRepository,
    notifier: NotificationService,
    identity: IdentityService,
) -> GrievanceService:
    return GrievanceService(seeded_repo, GrievanceClassifier(), notifier, identity)


@pytest.fixture
def queries(seeded_repo: GrievanceRepository) -> GrievanceQueryService:
    return GrievanceQueryService(seeded_repo, ai_log_limit=50)


@pytest.fixture
def student() -> ViewerContext:
    return make_viewer(Role.STUDENT)


@pytest.fixture
def admin() -> ViewerContext:
    return make_viewer(Role.ADMIN)


@pytest.fixture
def it_hod() -> ViewerContext:
    return make_viewer(Role.HOD, user_id="hod-it", department="IT Section")


@pytest.fixture
def anonymous_viewer() -> ViewerContext:
    return ViewerContext.anonymous()


async def register(identity: IdentityService, role: Role, email: str, department: str | None = None) -> User:
    return await identity.signup(
        name=f"{role.value.title()} Person",
        email=email,
        password="s3cret-pass",
        role=role,
        department=department,
    )
