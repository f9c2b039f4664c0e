"""Per-client sliding-window rate limiting.

The window bookkeeping lives in :class:`SlidingWindowLimiter` so it can
be exercised without an ASGI stack; :class:`RateLimitMiddleware` only
extracts the client address and shapes the 429 response.  State is
process-local.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Callable, Iterable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


class SlidingWindowLimiter:
    """Allow at most *limit* hits per *window_seconds* for each key."""

    def __init__(
        self,
        limit: int,
        *,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sweep_every: int = 1000,
    ) -> None:
        self.limit = limit
        self._window = window_seconds
        self._clock = clock
        self._sweep_every = sweep_every
        self._hits: dict[str, deque[float]] = {}
        self._calls = 0
        self._lock = asyncio.Lock()

    @property
    def tracked_keys(self) -> int:
        return len(self._hits)

    async def hit(self, key: str) -> tuple[bool, int]:
        """Record a hit for *key*.

        Returns ``(allowed, value)`` where *value* is the remaining quota
        when allowed and the retry-after delay in seconds otherwise.
        """
        now = self._clock()
        async with self._lock:
            self._calls += 1
            if self._calls % self._sweep_every == 0:
                self._sweep(now)

            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= now - self._window:
                hits.popleft()

            if len(hits) >= self.limit:
                return False, max(1, int(self._window - (now - hits[0])) + 1)

            hits.append(now)
            return True, self.limit - len(hits)

    def _sweep(self, now: float) -> None:
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= now - self._window]
        for key in stale:
            del self._hits[key]
        if stale:
            logger.debug("rate_limit.swept", removed=len(stale))


def client_address(request: Request, trusted_proxy_count: int) -> str:
    """Client IP, skipping *trusted_proxy_count* proxies in ``X-Forwarded-For``."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded and trusted_proxy_count > 0:
        hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
        if hops:
            position = len(hops) - 1 - trusted_proxy_count
            return hops[max(position, 0)]
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: object,
        max_requests_per_minute: int = 60,
        trusted_proxy_count: int = 1,
        exempt_paths: Iterable[str] = (),
    ) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._limiter = SlidingWindowLimiter(max_requests_per_minute)
        self._trusted_proxy_count = trusted_proxy_count
        self._exempt = frozenset(exempt_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self._exempt:
            return await call_next(request)

        client = client_address(request, self._trusted_proxy_count)
        allowed, value = await self._limiter.hit(client)
        limit = str(self._limiter.limit)

        if not allowed:
            logger.warning("rate_limit.exceeded", client_ip=client, limit=self._limiter.limit)
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Please try again later.", "retryAfterSeconds": value},
                headers={"Retry-After": str(value), "X-RateLimit-Limit": limit, "X-RateLimit-Remaining": "0"},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = limit
        response.headers["X-RateLimit-Remaining"] = str(value)
        return response
