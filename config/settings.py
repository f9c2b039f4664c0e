"""Application settings loaded from environment variables.

Uses pydantic-settings for validation and type coercion. App-specific
settings use the ``GRIEVEASE_`` prefix; infrastructure settings (Redis,
Gemini, SMTP) use their canonical environment variable names via
``validation_alias``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Central configuration for the GrievEase API.

    Environment variables are loaded from a ``.env`` file when present.
    App-specific keys are prefixed with ``GRIEVEASE_``; infra keys use
    their standard names (configured via ``validation_alias``).
    """

    model_config = SettingsConfigDict(
        env_prefix="GRIEVEASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ── App ────────────────────────────────────────────────────────────
    env: Literal["development", "production"] = "development"
    api_prefix: str = "/api/v1"

    # ── API ────────────────────────────────────────────────────────────
    api_host: str = Field(default="0.0.0.0", validation_alias="API_HOST")
    api_port: int = Field(default=8000, validation_alias="API_PORT")
    cors_origins: str = Field(default="", validation_alias="CORS_ORIGINS")

    # ── Redis (key-value store) ────────────────────────────────────────
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")

    # ── Gemini ─────────────────────────────────────────────────────────
    gemini_api_key: str = Field(default="", validation_alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-2.0-flash-lite", validation_alias="GEMINI_MODEL")
    gemini_api_base: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        validation_alias="GEMINI_API_BASE",
    )
    llm_timeout_seconds: float = 15.0
    llm_max_attempts: int = Field(default=2, ge=1)

    # ── Email (SMTP) ───────────────────────────────────────────────────
    smtp_host: str = Field(default="smtp.gmail.com", validation_alias="SMTP_HOST")
    smtp_port: int = Field(default=587, validation_alias="SMTP_PORT")
    smtp_username: str = Field(default="", validation_alias="SMTP_USERNAME")
    smtp_password: str = Field(default="", validation_alias="SMTP_PASSWORD")
    smtp_from_name: str = Field(default="AI Grievance System", validation_alias="SMTP_FROM_NAME")
    notify_in_background: bool = True

    # ── Auth ───────────────────────────────────────────────────────────
    anon_key: str = Field(default="", validation_alias="ANON_KEY")
    session_ttl: int = Field(default=86_400, validation_alias="SESSION_TTL")  # 24 hours

    # ── Grievances ─────────────────────────────────────────────────────
    ai_log_limit: int = 50
    seed_default_departments: bool = True

    # ── Rate Limiting ──────────────────────────────────────────────────
    rate_limit_per_minute: int = Field(default=60, validation_alias="RATE_LIMIT_PER_MINUTE")
    trusted_proxy_count: int = Field(
        default=1,
        ge=0,
        validation_alias="TRUSTED_PROXY_COUNT",
    )

    # ── Logging ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="json", validation_alias="LOG_FORMAT")

    # ── Derived Properties ─────────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.env == Environment.PRODUCTION

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_username and self.smtp_password)


# Module-level singleton -- import ``settings`` everywhere.
settings = Settings()
