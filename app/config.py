"""
Application configuration using pydantic-settings.
Loads from environment variables / .env file.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "vivaha-connect"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # API Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Postgres
    database_url: str = ""

    # Redis (Celery broker)
    redis_url: str = "redis://localhost:6379/0"

    # Admin
    admin_api_key: str = ""

    # Timezone used for "today" boundaries (daily interest limit)
    default_timezone: str = "Asia/Kolkata"

    # Interests
    interest_daily_limit: int = 10
    interest_expiry_days: int = 30

    # Delivery channels
    email_gateway_url: str = ""
    push_gateway_url: str = ""
    channel_timeout_seconds: float = 10.0

    # Analytics
    analytics_endpoint: str = ""
    analytics_buffer_size: int = 1000
    analytics_window_minutes: int = 60
    analytics_currency: str = "INR"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
