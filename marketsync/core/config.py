# marketsync/core/config.py

import os
from functools import lru_cache
from typing import Optional
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = ""
    DATABASE_ECHO: bool = False
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_POOL_RECYCLE: int = 1800

    # Webhooks
    WEBHOOK_SECRET: str = ""  # Fallback when a marketplace has no secret of its own
    SIGNATURE_FAILURE_LIMIT: int = 20
    SIGNATURE_FAILURE_WINDOW: int = 900  # seconds

    # Stock
    LOW_STOCK_THRESHOLD: int = 10

    # Polling
    POLL_PAGE_SIZE: int = 100
    POLL_SCHEDULE: str = "*/2 * * * *"
    POLL_SCHEDULE_ENABLED: bool = False
    MARKETPLACE_TIMEOUT: float = 30.0

    # Trendyol
    TRENDYOL_BASE_URL: str = "https://apigw.trendyol.com/integration"

    # Notifications
    NOTIFICATION_WEBHOOK_URL: Optional[str] = None
    NOTIFICATION_TIMEOUT: float = 10.0

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def async_database_url(self) -> str:
        """DATABASE_URL coerced to an async driver."""
        url = self.DATABASE_URL or os.environ.get('DATABASE_URL', '')
        if url.startswith('postgres://'):
            url = url.replace('postgres://', 'postgresql+asyncpg://', 1)
        elif url.startswith('postgresql://'):
            url = url.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return url


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()


def clear_settings_cache():
    """Clear the settings cache - useful when switching between environments"""
    get_settings.cache_clear()
