# keyword_discovery/core/config.py

import os
from functools import lru_cache
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./keyword_discovery.db"
    DB_ECHO: bool = False

    # Keyword suggestion provider (Gemini)
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-1.5-flash"
    SUGGESTION_TIMEOUT_SECONDS: float = 30.0

    # App Store catalog
    APP_STORE_TIMEOUT_SECONDS: float = 10.0
    APP_STORE_SEARCH_LIMIT: int = 10
    APP_STORE_CACHE_TTL_SECONDS: float = 1800.0  # 0 disables the response cache
    APP_STORE_CACHE_MAX_SIZE: int = 1000

    # Job runner pacing (fixed rate-limit pauses, seconds)
    KEYWORD_DELAY_SECONDS: float = 2.0
    STRATEGY_CALL_DELAY_SECONDS: float = 1.0

    # Resume running jobs and arm timers at startup
    SCHEDULER_ENABLED: bool = True

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def async_database_url(self) -> str:
        """DATABASE_URL with the async driver filled in for bare postgres URLs."""
        url = self.DATABASE_URL
        if url.startswith('postgresql://'):
            url = url.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return url


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()


def clear_settings_cache():
    """Clear the settings cache - useful when switching between environments"""
    get_settings.cache_clear()
