"""Domain exceptions for the grievance pipeline.

Only :class:`ValidationError`, :class:`UnauthorizedError` and
:class:`NotFoundError` ever reach a client; the API layer maps them to
HTTP responses via ``status_code``.  :class:`ClassificationError` and
:class:`NotificationError` are absorbed by the classifier fallback and
the notification sender respectively.
"""

from __future__ import annotations


class GrievanceError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(GrievanceError):
    """Missing or invalid input (bad status value, blank title, ...)."""

    status_code = 400


class UnauthorizedError(GrievanceError):
    """Caller is unauthenticated or lacks the required role."""

    status_code = 401


class NotFoundError(GrievanceError):
    status_code = 404


class ClassificationError(GrievanceError):
    """The language-model classification could not be used."""


class NotificationError(GrievanceError):
    """An email could not be delivered."""
