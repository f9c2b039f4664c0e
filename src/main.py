"""GrievEase FastAPI application entry point.

Creates the FastAPI app, configures middleware and error handlers,
includes routers, and manages the lifecycle of the backend services
(store, LLM, classifier, identity, notifications, grievances).
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from config.settings import settings
from src.api.router import api_router
from src.middleware.privacy import PrivacyMiddleware, sanitize_email
from src.middleware.rate_limit import RateLimitMiddleware
from src.services.errors import GrievanceError, UnauthorizedError

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------


def _configure_logging() -> None:
    """Set up structlog with JSON or console rendering based on settings."""
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.log_level.lower()),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup and shutdown of the GrievEase services.

    On startup:
      1. Open the key-value store (Redis, or in-memory when unavailable)
      2. Create the Gemini client when an API key is configured
      3. Build classifier, identity, notification and grievance services
      4. Seed the default departments into an empty catalogue
      5. Store everything on ``app.state``

    On shutdown:
      - Wait for outstanding notification emails.
      - Close the LLM HTTP client and the store.
    """
    _configure_logging()
    logger.info("app.startup", env=settings.env, api_prefix=settings.api_prefix)

    app.state.start_time = time.time()

    # -- 1. Store -----------------------------------------------------------
    from src.services.repository import GrievanceRepository
    from src.services.store import KeyValueStore

    store = KeyValueStore(
        redis_url=settings.redis_url if settings.redis_url else None,
        namespace="grievease:",
    )
    repo = GrievanceRepository(store)
    app.state.store = store
    logger.info("app.store_initialised")

    # -- 2. LLM (Gemini) ----------------------------------------------------
    from src.services.llm import LLMService

    llm: LLMService | None = None
    if settings.gemini_api_key:
        llm = LLMService(
            settings.gemini_api_key,
            model_name=settings.gemini_model,
            api_base=settings.gemini_api_base,
            timeout_seconds=settings.llm_timeout_seconds,
            max_attempts=settings.llm_max_attempts,
        )
        logger.info("app.llm_initialised", model=settings.gemini_model)
    else:
        logger.warning("app.llm_not_configured", note="Keyword fallback classification only")
    app.state.llm = llm

    # -- 3. Services --------------------------------------------------------
    from src.services.classifier import GrievanceClassifier
    from src.services.departments import DepartmentService
    from src.services.grievance_query import GrievanceQueryService
    from src.services.grievance_service import GrievanceService
    from src.services.identity import IdentityService
    from src.services.notifications import LogEmailProvider, NotificationService, SMTPEmailProvider

    identity = IdentityService(store, anon_key=settings.anon_key, session_ttl=settings.session_ttl)

    if settings.smtp_configured:
        provider = SMTPEmailProvider(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_name=settings.smtp_from_name,
        )
        app.state.email_backend = "smtp"
    else:
        provider = LogEmailProvider()
        app.state.email_backend = "log_only"
        logger.warning("app.smtp_not_configured")
    notifier = NotificationService(provider, background=settings.notify_in_background)

    departments = DepartmentService(repo)
    app.state.identity = identity
    app.state.notifier = notifier
    app.state.departments = departments
    app.state.grievances = GrievanceService(repo, GrievanceClassifier(llm), notifier, identity)
    app.state.queries = GrievanceQueryService(repo, ai_log_limit=settings.ai_log_limit)
    logger.info("app.services_initialised", email_backend=app.state.email_backend)

    # -- 4. Default departments ---------------------------------------------
    if settings.seed_default_departments:
        seeded = await departments.seed_defaults()
        logger.info("app.departments_ready", seeded=seeded)

    logger.info("app.startup_complete")

    yield

    # -- Shutdown -----------------------------------------------------------
    logger.info("app.shutdown_start")
    await notifier.drain()
    if llm is not None:
        await llm.close()
    await store.close()
    logger.info("app.shutdown_complete")


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="GrievEase API",
    description=(
        "College grievance management: AI-assisted department and priority "
        "classification, role-scoped visibility, comments and email updates."
    ),
    version="0.1.0",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)


# -- Error handlers ---------------------------------------------------------


@app.exception_handler(GrievanceError)
async def grievance_error_handler(request: Request, exc: GrievanceError) -> ORJSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
    logger.info(
        "api.request_rejected",
        path=request.url.path,
        status_code=exc.status_code,
        error_type=type(exc).__name__,
        detail=sanitize_email(exc.message),
    )
    return ORJSONResponse(status_code=exc.status_code, content={"detail": exc.message}, headers=headers)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> ORJSONResponse:
    logger.error("api.unhandled_error", path=request.url.path, exc_info=exc)
    return ORJSONResponse(status_code=500, content={"detail": "Internal server error"})


# -- CORS middleware --------------------------------------------------------
# SECURITY: allow_credentials=True must NOT be combined with allow_origins=["*"].
if settings.is_production:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list or ["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "Authorization"],
    )

# -- Custom middleware ------------------------------------------------------
app.add_middleware(PrivacyMiddleware)
app.add_middleware(
    RateLimitMiddleware,
    max_requests_per_minute=settings.rate_limit_per_minute,
    trusted_proxy_count=settings.trusted_proxy_count,
    exempt_paths=(
        f"{settings.api_prefix}/health",
        f"{settings.api_prefix}/health/ready",
        "/metrics",
        "/docs",
        "/redoc",
        "/openapi.json",
    ),
)

# -- Prometheus metrics -----------------------------------------------------
try:
    from prometheus_fastapi_instrumentator import Instrumentator

    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=["/metrics", f"{settings.api_prefix}/health"],
    ).instrument(app).expose(
        app,
        endpoint="/metrics",
        include_in_schema=not settings.is_production,
    )
    logger.info("app.prometheus_metrics_enabled")
except ImportError:
    logger.warning("app.prometheus_not_available")

# -- Include routers -------------------------------------------------------
app.include_router(api_router)


@app.get("/api", response_class=ORJSONResponse)
async def api_info() -> dict:
    """API information endpoint."""
    return {
        "name": "GrievEase API",
        "version": app.version,
        "docs": "/docs",
        "health": f"{settings.api_prefix}/health",
    }
