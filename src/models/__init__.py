from src.models.department import Department
from src.models.enums import (
    FILTER_ALL,
    ClassificationMethod,
    GrievanceStatus,
    Priority,
    Role,
)
from src.models.grievance import (
    ANONYMOUS_ID,
    ANONYMOUS_NAME,
    AIClassificationLog,
    Classification,
    Comment,
    Grievance,
    GrievanceFilters,
    GrievanceStats,
    UserStats,
)
from src.models.user import StoredUser, User, ViewerContext

__all__ = [
    "ANONYMOUS_ID",
    "ANONYMOUS_NAME",
    "AIClassificationLog",
    "Classification",
    "ClassificationMethod",
    "Comment",
    "Department",
    "FILTER_ALL",
    "Grievance",
    "GrievanceFilters",
    "GrievanceStats",
    "GrievanceStatus",
    "Priority",
    "Role",
    "StoredUser",
    "User",
    "UserStats",
    "ViewerContext",
]
