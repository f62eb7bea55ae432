"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables (or a local .env file).
"""

from functools import lru_cache
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "eVote"
    APP_ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database - PostgreSQL
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "evote"
    POSTGRES_PASSWORD: str = ""  # Required - loaded from environment
    POSTGRES_DB: str = "evote"
    POSTGRES_SSL: bool = False
    DATABASE_URL: str | None = None  # Full override, e.g. for managed databases
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10

    # Paystack (mobile money provider)
    PAYSTACK_SECRET_KEY: str = ""  # Required - signs webhooks and authenticates API calls
    PAYSTACK_BASE_URL: str = "https://api.paystack.co"
    PAYSTACK_TIMEOUT_SECONDS: float = 15.0
    PAYSTACK_CURRENCY: str = "GHS"
    # Mobile money charges need an email; USSD callers have none
    PAYSTACK_DEFAULT_EMAIL: str = "ussd@evote.app"
    PAYSTACK_CALLBACK_URL: str | None = None

    @field_validator("POSTGRES_PASSWORD", "PAYSTACK_SECRET_KEY")
    @classmethod
    def validate_required_secrets(cls, v: str, info: Any) -> str:
        """Validate that required secrets are set."""
        if not v:
            raise ValueError(f"{info.field_name} must be set in environment")
        return v

    @property
    def database_url(self) -> str:
        """Construct the asyncpg connection URL."""
        if self.DATABASE_URL:
            return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)
        url = (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )
        return f"{url}?ssl=require" if self.POSTGRES_SSL else url

    # USSD
    USSD_SESSION_TIMEOUT_SECONDS: int = 180  # Gateways abandon sessions after ~3 minutes
    MAX_VOTES_PER_TRANSACTION: int = 10000
    SUPPORT_CONTACT: str = "help@evote.app"
    TICKETS_URL: str = "https://evote.app/tickets"

    # Pending payment sweep (pull-based fallback for lost webhooks)
    PAYMENT_SWEEP_ENABLED: bool = True
    PAYMENT_SWEEP_INTERVAL_MINUTES: int = 5
    PAYMENT_SWEEP_MIN_AGE_MINUTES: int = 10
    PAYMENT_SWEEP_BATCH_SIZE: int = 50
    # Pending payments the provider still does not know after this long are failed
    PAYMENT_SWEEP_ABANDON_AFTER_MINUTES: int = 1440

    # CORS - stored as comma-separated string to avoid pydantic-settings JSON parsing issues
    CORS_ORIGINS: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        import json

        try:
            return json.loads(self.CORS_ORIGINS)
        except json.JSONDecodeError:
            return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
