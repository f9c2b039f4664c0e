"""GrievEase service layer -- store, classification, identity, notifications and grievances."""

from __future__ import annotations

from src.services.classifier import GrievanceClassifier, fallback_classification, manual_classification
from src.services.departments import DEFAULT_DEPARTMENTS, DepartmentService
from src.services.errors import (
    ClassificationError,
    GrievanceError,
    NotFoundError,
    NotificationError,
    UnauthorizedError,
    ValidationError,
)
from src.services.grievance_query import GrievanceQueryService
from src.services.grievance_service import GrievanceService
from src.services.identity import IdentityService
from src.services.llm import LLMResult, LLMService
from src.services.notifications import LogEmailProvider, NotificationService, SMTPEmailProvider
from src.services.repository import GrievanceRepository
from src.services.store import InMemoryStoreBackend, KeyValueStore, RedisStoreBackend

__all__ = [
    "DEFAULT_DEPARTMENTS",
    "ClassificationError",
    "DepartmentService",
    "GrievanceClassifier",
    "GrievanceError",
    "GrievanceQueryService",
    "GrievanceRepository",
    "GrievanceService",
    "IdentityService",
    "InMemoryStoreBackend",
    "KeyValueStore",
    "LLMResult",
    "LLMService",
    "LogEmailProvider",
    "NotFoundError",
    "NotificationError",
    "NotificationService",
    "RedisStoreBackend",
    "SMTPEmailProvider",
    "UnauthorizedError",
    "ValidationError",
    "fallback_classification",
    "manual_classification",
]
