"""
Application Configuration

This module provides type-safe configuration loading using Pydantic settings.
Environment variables are loaded from .env file and validated.

Tables that do not fit in environment variables (level thresholds,
recommendation priorities) live in config/default.yaml and are exposed
through `yaml_config`.

Usage:
    from learnpath.config import settings

    db_url = settings.DB_URL
    threshold = settings.PASS_THRESHOLD_PERCENT
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic_settings import BaseSettings

from learnpath.enums.api import RateLimitType


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "LearnPath"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "learnpath"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "learnpath"

    # Full SQLAlchemy async URL; overrides the POSTGRES_* settings when set
    # (e.g. "sqlite+aiosqlite:///./learnpath.db" for local runs).
    DATABASE_URL: Optional[str] = None

    @property
    def POSTGRES_URL(self) -> str:
        """Async PostgreSQL connection URL."""
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @property
    def POSTGRES_URL_SYNC(self) -> str:
        """Sync PostgreSQL connection URL for Alembic migrations."""
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @property
    def DB_URL(self) -> str:
        """Connection URL actually used by the engine."""
        return self.DATABASE_URL or self.POSTGRES_URL

    # Scoring
    PASS_THRESHOLD_PERCENT: float = 80.0
    OPEN_ENDED_SIMILARITY_THRESHOLD: float = 0.8
    OPEN_ENDED_MIN_CHARS: int = 10

    # Mastery / level progression
    MASTERY_ACCURACY_THRESHOLD: float = 0.8
    MASTERY_MIN_ATTEMPTS: int = 10
    LEVEL_REQUIRE_MASTERY: bool = True
    LEVEL_UPDATE_MAX_RETRIES: int = 3

    # Recommendations
    RECOMMENDATION_TTL_DAYS: int = 7
    WEAK_SKILL_THRESHOLD: float = 0.6
    REVIEW_TOPIC_THRESHOLD: float = 70.0
    RECOMMENDATION_CLEANUP_ENABLED: bool = False
    RECOMMENDATION_SWEEP_HOUR: int = 3

    # Completion event bus
    EVENT_BUS_WORKERS: int = 4
    EVENT_BUS_QUEUE_SIZE: int = 1000
    EVENT_HANDLER_MAX_ATTEMPTS: int = 3
    EVENT_HANDLER_BACKOFF_MIN: float = 0.5
    EVENT_HANDLER_BACKOFF_MAX: float = 8.0

    # Scheduler
    SCHEDULER_ENABLED: bool = True

    # Rate limiting (slowapi limit strings)
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "100/minute"
    RATE_LIMIT_SUBMISSION: str = "30/minute"

    def get_rate_limit(self, rate_limit_type: RateLimitType) -> str:
        """Rate limit string for an endpoint category."""
        if rate_limit_type == RateLimitType.SUBMISSION:
            return self.RATE_LIMIT_SUBMISSION
        return self.RATE_LIMIT_DEFAULT

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()


@lru_cache()
def load_yaml_config() -> dict[str, Any]:
    """Load application configuration from config/default.yaml."""
    config_path = Path(__file__).parent.parent.parent.parent / "config" / "default.yaml"

    if not config_path.exists():
        return {}

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


yaml_config: dict[str, Any] = load_yaml_config()
