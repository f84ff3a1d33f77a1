"""Application settings using Pydantic for environment-based configuration."""
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

VALID_PROVIDERS = ("click", "payme")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Backend API
    backend_api_url: str = Field(..., description="Journal portal REST API base URL")
    backend_api_token: Optional[str] = Field(
        default=None, description="Bearer token for the portal API"
    )
    request_timeout: Optional[float] = Field(
        default=None,
        description="HTTP timeout in seconds (unset keeps the transport default)",
    )
    health_path: str = Field(default="/", description="Path probed by the health check")

    # Payments
    default_provider: str = Field(default="click", description="Payment provider (click/payme)")
    default_currency: str = Field(default="UZS", description="Currency for new transactions")

    # Redirect handoff
    redirect_delay: float = Field(
        default=0.5, ge=0, description="Delay before handing off to the checkout page (seconds)"
    )
    redirect_verify_delay: float = Field(
        default=0.1, ge=0, description="Delay before checking that a navigation took effect"
    )

    # Reconciliation
    status_poll_interval: float = Field(
        default=3.0, ge=0, description="Seconds between transaction status polls"
    )
    status_poll_attempts: int = Field(
        default=20, ge=1, description="Max status polls before giving up"
    )

    # Application
    app_name: str = Field(default="journal-payments", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("backend_api_url")
    @classmethod
    def validate_backend_url(cls, v: str) -> str:
        """Require an absolute http(s) base URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("backend_api_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("default_provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Validate payment provider."""
        if v.lower() not in VALID_PROVIDERS:
            raise ValueError(f"Invalid provider. Must be one of: {list(VALID_PROVIDERS)}")
        return v.lower()

    @field_validator("default_currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Validate currency format."""
        if len(v) != 3 or not v.isalpha():
            raise ValueError("Currency must be 3-letter code")
        return v.upper()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Only the composition root (CLI, service container) should call this;
    services receive their settings explicitly.
    """
    return Settings()
