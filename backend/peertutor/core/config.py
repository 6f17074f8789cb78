# backend/peertutor/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal, Set

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import BRAND_NAME


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path} (exists={env_path.exists()})")
    load_dotenv(env_path)


PROD_ENVIRONMENTS: Set[str] = {"prod", "production"}


class Settings(BaseSettings):
    environment: str = Field(
        default="development",
        description="Deployment environment (development|staging|production)",
    )
    is_testing: bool = False  # Set to True when running tests
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Persistence
    database_url: str = Field(
        default="sqlite:///./peertutor.db",
        description="SQLAlchemy database URL for the session store",
    )
    db_pool_size: int = Field(default=5, ge=1)
    db_max_overflow: int = Field(default=10, ge=0)

    # Redis (booking locks, realtime bus, Celery broker)
    redis_url: str = "redis://localhost:6379"
    realtime_enabled: bool = Field(
        default=True,
        description="Publish session status changes on the realtime bus",
    )

    # Session lifecycle policy
    start_early_minutes: int = Field(
        default=15,
        ge=0,
        description="How long before scheduled start a session may be started",
    )
    late_cancellation_hours: int = Field(
        default=24,
        ge=0,
        description="Cancellations with less notice than this get an admin annotation",
    )
    max_recurring_occurrences: int = Field(
        default=104,
        ge=1,
        description="Upper bound on sessions generated for one recurring series",
    )
    meeting_link_base_url: str = Field(
        default="https://meet.example.com",
        description="Base URL used to build meeting links for online sessions",
    )
    booking_lock_ttl_seconds: int = Field(default=30, ge=1)

    # Reminder sweep
    reminder_window_hours: int = Field(default=24, ge=1)
    reminder_sweep_minutes: int = Field(default=15, ge=1)
    reminder_batch_size: int = Field(default=500, ge=1)

    # Outbox dispatcher
    outbox_batch_size: int = Field(default=200, ge=1)

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("environment")
    @classmethod
    def _normalize_environment(cls, value: str) -> str:
        return (value or "development").strip().lower()

    @field_validator("meeting_link_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def is_production(self) -> bool:
        return self.environment in PROD_ENVIRONMENTS

    @property
    def service_name(self) -> str:
        return f"{BRAND_NAME.lower()}-api"


settings = Settings()
