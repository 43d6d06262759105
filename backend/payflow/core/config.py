# backend/payflow/core/config.py
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


PRODUCTION_ENVIRONMENTS = {"prod", "production"}


class Settings(BaseSettings):
    """Runtime configuration for the payment lifecycle orchestrator."""

    environment: str = Field(
        default="development",
        description="Deployment environment (development|staging|production)",
    )
    is_testing: bool = Field(default=False, description="Set by the test suite")

    database_url: str = Field(
        default="sqlite:///./payflow.db",
        description="SQLAlchemy database URL",
    )

    # Stripe Configuration
    stripe_secret_key: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe secret key for backend API calls",
    )
    stripe_currency: str = Field(default="usd", description="Default currency for payments")
    processor_timeout_seconds: float = Field(
        default=60.0,
        description="Per-call timeout for payment processor requests",
    )

    # Trigger surface
    cron_secret: SecretStr = Field(
        default=SecretStr(""),
        description="Bearer secret expected on scheduled job endpoints",
    )
    internal_api_secret: SecretStr = Field(
        default=SecretStr(""),
        description="Bearer secret expected on cancellation and no-show endpoints",
    )

    # Batch jobs
    batch_limit: int = Field(default=100, description="Maximum candidates pulled per batch run")
    balance_notification_delay_hours: int = Field(
        default=2, description="Hours after appointment end before the completion notice"
    )

    # Background work
    background_workers: int = Field(
        default=4, description="Worker threads for fire-and-forget background tasks"
    )
    secondary_environment_url: Optional[str] = Field(
        default=None,
        description="Base URL of the deployment that mirrors cron runs (staging replication)",
    )
    chain_timeout_seconds: float = Field(
        default=120.0, description="Timeout for the chained secondary cron invocation"
    )
    notification_webhook_url: Optional[str] = Field(
        default=None,
        description="When set, booking notifications are POSTed here instead of only logged",
    )

    # Use ConfigDict instead of Config class (Pydantic V2 style)
    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("processor_timeout_seconds")
    @classmethod
    def _validate_processor_timeout(cls, value: float) -> float:
        if not 30 <= value <= 120:
            raise ValueError("PROCESSOR_TIMEOUT_SECONDS must be between 30 and 120")
        return value

    @field_validator("batch_limit")
    @classmethod
    def _validate_batch_limit(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("BATCH_LIMIT must be positive")
        return value

    @field_validator("secondary_environment_url", "notification_webhook_url")
    @classmethod
    def _strip_trailing_slash(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip().rstrip("/")
        return cleaned or None

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() in PRODUCTION_ENVIRONMENTS


settings = Settings()
