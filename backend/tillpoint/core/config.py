"""Application configuration using pydantic-settings.

Every tunable (database, token signing, cache refresh, the order and
payment policies) is read from the environment or .env once, through the
module-level ``settings`` object. Services accept a ``Settings`` instance so
tests can pass their own policy without touching the environment.
"""

from functools import lru_cache
from typing import List, Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # Database - SQLite for local dev, PostgreSQL in production
    database_url: str = "sqlite:///./tillpoint.db"

    # Security
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 720  # one long shift

    # CORS - comma-separated origins or "*" for development only
    cors_origins: str = "http://localhost:5173,http://localhost:5174"

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"

    # Rate limiting
    rate_limit_enabled: bool = True

    # Business day boundaries for order/receipt numbering
    timezone: str = "Africa/Kampala"

    # ==========================================================================
    # Business snapshot cache (settings + menu)
    # ==========================================================================
    cache_refresh_seconds: int = 300  # staleness bound
    default_business_name: str = "Default Business"
    default_currency: str = "UGX"
    default_tax_rate: str = "10.00"

    # ==========================================================================
    # Push notifications
    # ==========================================================================
    notification_queue_size: int = 1000  # per subscriber
    push_send_timeout: float = 5.0  # seconds per WebSocket send

    # ==========================================================================
    # Order / payment / shift policies
    # ==========================================================================
    # off: no check, warn: log when the acting staff has no active shift,
    # require: reject order creation and payment without an active shift
    shift_enforcement: Literal["off", "warn", "require"] = "warn"
    # When True, payment is accepted from any unpaid status, not only ready/served
    allow_early_payment: bool = False
    # When True, a fixed discount larger than the subtotal is clamped instead of rejected
    clamp_fixed_discount: bool = False

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        if v == "change-me-in-production":
            import warnings
            warnings.warn(
                "Using default SECRET_KEY is insecure! Set SECRET_KEY environment variable.",
                UserWarning,
                stacklevel=2,
            )
        return v

    @field_validator("cache_refresh_seconds")
    @classmethod
    def validate_refresh_interval(cls, v: int) -> int:
        if v < 1:
            raise ValueError("cache_refresh_seconds must be at least 1 second")
        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate settings for production safety."""
        if not self.debug:
            if self.secret_key == "change-me-in-production":
                raise ValueError(
                    "FATAL: Cannot start in production mode with default SECRET_KEY. "
                    "Set a secure SECRET_KEY environment variable (minimum 32 characters)."
                )
            if len(self.secret_key) < 32:
                raise ValueError(
                    f"FATAL: SECRET_KEY must be at least 32 characters in production mode "
                    f"(current length: {len(self.secret_key)})."
                )
        return self

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
