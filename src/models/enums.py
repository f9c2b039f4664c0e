from __future__ import annotations

from enum import StrEnum


class Role(StrEnum):
    __slots__ = ()

    STUDENT = "student"
    TEACHER = "teacher"
    HOD = "hod"
    ADMIN = "admin"


class Priority(StrEnum):
    __slots__ = ()

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class GrievanceStatus(StrEnum):
    __slots__ = ()

    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"
    REJECTED = "Rejected"


class ClassificationMethod(StrEnum):
    """How a grievance's department and priority were decided."""

    __slots__ = ()

    AI = "ai"
    FALLBACK = "fallback"
    MANUAL = "manual"


# Sentinel accepted by listing filters to mean "no filter".
FILTER_ALL = "All"
