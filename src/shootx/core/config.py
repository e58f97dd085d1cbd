"""Application configuration using Pydantic BaseSettings."""

import logging

import structlog
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./shootx.db", alias="DATABASE_URL")
    db_pool_size: int = Field(default=20, alias="DB_POOL_SIZE")

    # Application Environment
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # CORS Configuration (storefront origins calling the public endpoints)
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")

    # Server Configuration
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")

    # ComfyUI on RunPod
    runpod_api_url: str = Field(default="", alias="RUNPOD_API_URL")
    runpod_api_key: str = Field(default="", alias="RUNPOD_API_KEY")
    generation_poll_interval_seconds: float = Field(
        default=2.0, alias="GENERATION_POLL_INTERVAL_SECONDS"
    )
    generation_max_attempts: int = Field(default=30, ge=1, alias="GENERATION_MAX_ATTEMPTS")
    generation_request_timeout_seconds: float = Field(
        default=30.0, alias="GENERATION_REQUEST_TIMEOUT_SECONDS"
    )

    # Generation worker pool
    generation_workers: int = Field(default=4, ge=1, alias="GENERATION_WORKERS")
    generation_max_pending: int = Field(default=100, ge=1, alias="GENERATION_MAX_PENDING")

    # Stale job reconciliation
    stale_job_minutes: int = Field(default=10, ge=1, alias="STALE_JOB_MINUTES")
    reconcile_interval_seconds: int = Field(default=60, ge=1, alias="RECONCILE_INTERVAL_SECONDS")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @model_validator(mode="after")
    def validate_required_config(self) -> "Settings":
        """Validate required configuration on startup.

        Fails fast when the generation backend is not configured. Validation is
        skipped in test environments.
        """
        if self.app_env in ("test", "testing"):
            return self

        missing = []

        if not self.runpod_api_url:
            missing.append("RUNPOD_API_URL: Base URL of the ComfyUI instance on RunPod")

        if not self.runpod_api_key:
            missing.append("RUNPOD_API_KEY: RunPod API key used as bearer token")

        if missing:
            error_msg = "CRITICAL: Missing required environment variables:\n\n" + "\n".join(
                f"  - {m}" for m in missing
            )
            error_msg += "\n\nThe application cannot start without these variables."
            error_msg += "\nPlease update your .env file and restart."
            raise ValueError(error_msg)

        return self


def configure_logging(settings: Settings) -> None:
    """Configure structlog based on application environment.

    - Production: JSON output for log aggregation
    - Development: Console output for human readability
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.app_env == "production":
        renderer = structlog.processors.JSONRenderer()
        extra_processors = [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
        ]
    else:
        renderer = structlog.dev.ConsoleRenderer()
        extra_processors = []

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            *extra_processors,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
