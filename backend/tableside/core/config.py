"""Application configuration using pydantic-settings.

All environment variables should be accessed through the settings object
rather than using os.getenv() directly. Heartbeat, throttle and timeout
values are independent settings; only interval < timeout is enforced.
"""

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite:///./data/tableside.db"

    # Security
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 240  # 4 hours

    # CORS - comma-separated origins or "*" for development only
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # ==========================================================================
    # Table session lifecycle
    # ==========================================================================
    session_timeout_minutes: int = 5
    heartbeat_interval_seconds: int = 45
    activity_throttle_seconds: int = 5
    cleanup_interval_seconds: int = 60
    cleanup_batch_size: int = 100

    # Base URL the customer-side tracker posts heartbeats to
    public_api_url: str = "http://localhost:8000"

    # ==========================================================================
    # Subscriptions
    # ==========================================================================
    subscription_grace_period_days: int = 3

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"

    # Rate limiting
    rate_limit_enabled: bool = True
    heartbeat_rate_limit: str = "30/minute"

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        if v == "change-me-in-production" or len(v) < 32:
            import warnings
            warnings.warn(
                "SECRET_KEY is the default or shorter than 32 characters. "
                "Set SECRET_KEY environment variable.",
                UserWarning,
                stacklevel=2,
            )
        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate settings for production safety and timing sanity."""
        if self.heartbeat_interval_seconds >= self.session_timeout_seconds:
            raise ValueError(
                f"HEARTBEAT_INTERVAL_SECONDS ({self.heartbeat_interval_seconds}) must be "
                f"shorter than SESSION_TIMEOUT_MINUTES ({self.session_timeout_minutes} min), "
                "otherwise live sessions would be expired between heartbeats."
            )

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
        """Parse CORS origins into a list, filtering localhost in production."""
        if self.cors_origins == "*":
            return ["*"]

        origins = [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

        if not self.debug:
            localhost_patterns = ["localhost", "127.0.0.1", "0.0.0.0"]
            origins = [o for o in origins if not any(p in o for p in localhost_patterns)]

        return origins

    @property
    def session_timeout_seconds(self) -> int:
        return self.session_timeout_minutes * 60


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
