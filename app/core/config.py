# app/core/config.py

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
    # Database settings. Empty means in-memory stores (local development and tests).
    DATABASE_URL: str = ""

    # Sync engine
    SYNC_MAX_CONCURRENCY: int = 4           # simultaneous in-flight destination jobs
    SYNC_JOB_TIMEOUT_SECONDS: float = 60.0  # whole job, product write + inventory writes
    REMOTE_CALL_TIMEOUT_SECONDS: float = 20.0
    SYNC_PENDING_STALE_SECONDS: float = 300.0
    SYNC_HISTORY_LIMIT: int = 50

    # Shopify Admin API
    SHOPIFY_API_VERSION: str = "2024-10"
    SHOPIFY_DEFAULT_LOCATION_GID: Optional[str] = None

    # Notifications
    NOTIFICATION_RETENTION_DAYS: int = 30

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()

def clear_settings_cache():
    """Clear the settings cache - useful when switching between environments"""
    get_settings.cache_clear()
