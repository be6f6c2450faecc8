# backend/cadence/core/config.py
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


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
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: str = Field(default="development", description="Deployment environment")
    log_level: str = Field(default="INFO", description="Root log level")

    # Database
    database_url: str = Field(
        default="sqlite:///./cadence.db",
        description="SQLAlchemy database URL",
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements")

    # Celery / Redis
    redis_url: str = "redis://localhost:6379"
    event_dispatch_enabled: bool = Field(
        default=True,
        description="Publish domain events to Celery (disable to drop events in tests)",
    )

    # Stripe Configuration
    stripe_secret_key: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe platform secret key used for connected-account calls",
    )
    stripe_webhook_secret: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe webhook signing secret",
    )
    stripe_platform_fee_percentage: float = Field(
        default=0, description="Platform fee percentage taken from each hold (15 = 15%)"
    )
    stripe_currency: str = Field(default="usd", description="Default currency for payments")
    stripe_timeout_seconds: int = Field(default=8, description="Stripe HTTP timeout")

    # Booking policy
    payment_hold_timeout_minutes: int = Field(
        default=30,
        ge=1,
        description="Holds with no confirmation after this window are voided by the sweep",
    )
    slot_query_limit: int = Field(default=20, ge=1, le=200, description="Max slots per query")
    pack_renewal_max_attempts: int = Field(
        default=3, ge=1, description="Declined auto-renew charges retried before giving up"
    )
    waitlist_claim_minutes: int = Field(
        default=60, ge=1, description="How long a promoted waitlist client has to book the spot"
    )

    # Use ConfigDict instead of Config class (Pydantic V2 style)
    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("stripe_currency")
    @classmethod
    def _normalize_currency(cls, value: str) -> str:
        return (value or "usd").strip().lower()

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return (value or "INFO").strip().upper()

    @property
    def stripe_api_key(self) -> Optional[str]:
        """Plain Stripe secret, or None when unset."""
        secret = self.stripe_secret_key.get_secret_value() if self.stripe_secret_key else ""
        return secret or None

    @property
    def webhook_secret(self) -> Optional[str]:
        secret = self.stripe_webhook_secret.get_secret_value() if self.stripe_webhook_secret else ""
        return secret or None

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


settings = Settings()
