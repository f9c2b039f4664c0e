"""Request logging and privacy headers.

Email addresses never go into logs verbatim: :func:`sanitize_email`
masks them, and :class:`PrivacyMiddleware` logs only the method, path,
status and timing of each request before adding security headers to
the response.
"""

from __future__ import annotations

import re
import time
from typing import Final

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Email masking
# ---------------------------------------------------------------------------

_EMAIL_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"\b([A-Za-z0-9._%+-])[A-Za-z0-9._%+-]*@([A-Za-z0-9.-]+\.[A-Za-z]{2,})\b"
)


def sanitize_email(text: str) -> str:
    """Mask the local part of email addresses in *text*.

    ``priya.k@college.edu`` becomes ``p***@college.edu`` so logs stay
    useful for spotting a misconfigured domain without naming anyone.
    """
    return _EMAIL_PATTERN.sub(lambda m: f"{m.group(1)}***@{m.group(2)}", text)


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


class PrivacyMiddleware(BaseHTTPMiddleware):
    """Log each request without PII and harden response headers."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        logger.info(
            "request.completed",
            method=request.method,
            path=sanitize_email(request.url.path),
            status_code=response.status_code,
            duration_ms=round(elapsed_ms, 2),
        )

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains"
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, private"
        response.headers["Pragma"] = "no-cache"

        return response
