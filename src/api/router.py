"""Main API router combining all v1 route modules.

Aggregates every router under ``settings.api_prefix`` (``/api/v1`` by
default) so the FastAPI application only includes a single router.
"""

from __future__ import annotations

from fastapi import APIRouter

from config.settings import settings
from src.api.v1 import auth, departments, grievances, health, stats, users

api_router = APIRouter(prefix=settings.api_prefix)

api_router.include_router(health.router)
api_router.include_router(auth.router)
api_router.include_router(grievances.router)
api_router.include_router(stats.router)
api_router.include_router(departments.router)
api_router.include_router(users.router)
