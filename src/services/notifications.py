"""Best-effort email notifications for grievance events.

Three events produce email:

* ``submitted``      -- confirmation to the submitter, and an alert to
                        every admin plus the HOD of the assigned department.
* ``status_changed`` -- the submitter learns the old and new status.
* ``comment_added``  -- the submitter sees a comment left by an admin/HOD.

Delivery is strictly best-effort.  Provider failures raise
:class:`NotificationError` inside this module and are logged and
absorbed here; nothing in this module ever raises to the caller.  By
default each send runs as a tracked background task so the HTTP response
is not held up by SMTP; :meth:`NotificationService.drain` waits for
outstanding sends (shutdown, tests).
"""

from __future__ import annotations

import asyncio
import smtplib
from collections.abc import Coroutine, Iterable
from email.message import EmailMessage
from html import escape
from typing import Any, Final, Protocol

import structlog

from src.middleware.privacy import sanitize_email
from src.models.grievance import Classification, Comment, Grievance
from src.models.user import User
from src.services.errors import NotificationError

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

_TEMPLATES: Final[dict[str, tuple[str, str]]] = {
    "submitted": (
        "Grievance Submitted Successfully",
        "<h2>Your grievance has been submitted</h2>"
        "<p><strong>Title:</strong> {title}</p>"
        "<p><strong>Department:</strong> {department}</p>"
        "<p><strong>Priority:</strong> {priority}</p>"
        "<p><strong>Status:</strong> {status}</p>"
        "<p>You will be notified when there are updates to your grievance.</p>",
    ),
    "new_grievance": (
        "New Grievance Received",
        "<h2>New grievance has been submitted</h2>"
        "<p><strong>Title:</strong> {title}</p>"
        "<p><strong>Department:</strong> {department}</p>"
        "<p><strong>Priority:</strong> {priority}</p>"
        "<p><strong>Submitted by:</strong> {submitter}</p>"
        "<p>Please log in to the system to review and respond.</p>",
    ),
    "status_changed": (
        "Grievance Status Updated: {status}",
        "<h2>Your grievance status has been updated</h2>"
        "<p><strong>Title:</strong> {title}</p>"
        "<p><strong>Previous Status:</strong> {old_status}</p>"
        "<p><strong>New Status:</strong> {status}</p>"
        "<p><strong>Department:</strong> {department}</p>"
        "<p>Log in to view more details and any comments from the department.</p>",
    ),
    "comment_added": (
        "New Comment on Your Grievance",
        "<h2>A new comment has been added to your grievance</h2>"
        "<p><strong>Grievance Title:</strong> {title}</p>"
        "<p><strong>Comment from:</strong> {author} ({role})</p>"
        "<p><strong>Comment:</strong> {comment}</p>"
        "<p>Log in to view the full conversation and respond.</p>",
    ),
}


def render(template: str, **fields: Any) -> tuple[str, str]:
    """Return ``(subject, html_body)`` with every field HTML-escaped."""
    subject, body = _TEMPLATES[template]
    safe = {key: escape(str(value)) for key, value in fields.items()}
    return subject.format(**fields), body.format(**safe)


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class EmailProvider(Protocol):
    async def send(self, to: str, subject: str, html: str) -> None: ...


class SMTPEmailProvider:
    """SMTP delivery with STARTTLS (Gmail app passwords by default).

    :mod:`smtplib` is blocking, so each message is sent from a worker
    thread.
    """

    __slots__ = ("_from_name", "_host", "_password", "_port", "_timeout", "_username")

    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: str,
        password: str,
        from_name: str = "AI Grievance System",
        timeout: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._from_name = from_name
        self._timeout = timeout

    def _build(self, to: str, subject: str, html: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = f'"{self._from_name}" <{self._username}>'
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML-capable mail client.")
        message.add_alternative(html, subtype="html")
        return message

    def _send_sync(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
            server.starttls()
            server.login(self._username, self._password)
            server.send_message(message)

    async def send(self, to: str, subject: str, html: str) -> None:
        message = self._build(to, subject, html)
        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"SMTP delivery failed: {exc!s}") from exc


class LogEmailProvider:
    """Stand-in used when SMTP credentials are not configured."""

    async def send(self, to: str, subject: str, html: str) -> None:
        logger.info(
            "notifications.email_not_sent",
            reason="smtp_not_configured",
            to=sanitize_email(to),
            subject=subject,
        )


# ---------------------------------------------------------------------------
# Notification Service
# ---------------------------------------------------------------------------


class NotificationService:
    """Render and deliver grievance emails without ever failing the caller."""

    __slots__ = ("_background", "_pending", "_provider")

    def __init__(self, provider: EmailProvider, *, background: bool = True) -> None:
        self._provider = provider
        self._background = background
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # -- delivery ---------------------------------------------------------

    async def _deliver(self, to: str, subject: str, html: str) -> None:
        try:
            await self._provider.send(to, subject, html)
        except Exception as exc:
            logger.warning(
                "notifications.send_failed",
                to=sanitize_email(to),
                subject=subject,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return
        logger.info("notifications.sent", to=sanitize_email(to), subject=subject)

    async def _dispatch(self, sends: Iterable[Coroutine[Any, Any, None]]) -> None:
        for send in sends:
            if not self._background:
                await send
                continue
            task = asyncio.create_task(send)
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every background send started so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # -- events -----------------------------------------------------------

    async def grievance_submitted(
        self,
        grievance: Grievance,
        classification: Classification,
        staff: Iterable[User],
    ) -> None:
        sends: list[Coroutine[Any, Any, None]] = []
        if not grievance.is_anonymous and grievance.submitter_email:
            subject, html = render(
                "submitted",
                title=grievance.title,
                department=classification.department,
                priority=classification.priority.value,
                status=grievance.status.value,
            )
            sends.append(self._deliver(grievance.submitter_email, subject, html))

        subject, html = render(
            "new_grievance",
            title=grievance.title,
            department=classification.department,
            priority=classification.priority.value,
            submitter=grievance.submitter_name,
        )
        sends.extend(self._deliver(member.email, subject, html) for member in staff if member.email)
        await self._dispatch(sends)

    async def status_changed(self, grievance: Grievance, old_status: str) -> None:
        if grievance.is_anonymous or not grievance.submitter_email:
            return
        subject, html = render(
            "status_changed",
            title=grievance.title,
            old_status=old_status,
            status=grievance.status.value,
            department=grievance.department,
        )
        await self._dispatch([self._deliver(grievance.submitter_email, subject, html)])

    async def comment_added(self, grievance: Grievance, comment: Comment) -> None:
        if grievance.is_anonymous or not grievance.submitter_email:
            return
        subject, html = render(
            "comment_added",
            title=grievance.title,
            author=comment.author_name,
            role=comment.author_role.value,
            comment=comment.text,
        )
        await self._dispatch([self._deliver(grievance.submitter_email, subject, html)])
