"""
Application Configuration
Loads settings from environment variables.
"""

import tempfile
from pathlib import Path
from typing import List
from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache


PACKAGE_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "Preview Orchestrator API"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    PORT: int = 10000

    # Database - SQLite for local dev, PostgreSQL for production
    DATABASE_URL: str = "sqlite:///./previews.db"

    # Redis
    REDIS_URL: str = "redis://localhost:6379"

    # CORS
    CORS_ORIGINS: List[str] = ["*"]

    # Queue settings
    QUEUE_NAME: str = "preview-generation"
    QUEUE_CONCURRENCY: int = 2  # Worker processes, i.e. max pipelines running at once
    JOB_TIMEOUT: int = 120  # Seconds before an attempt is abandoned
    JOB_MAX_ATTEMPTS: int = 3
    JOB_BACKOFF_DELAY: float = 2.0  # Doubles per attempt

    # Generation step retries (nested inside the queue retries)
    GENERATION_MAX_ATTEMPTS: int = 3
    GENERATION_RETRY_DELAY: float = 1.0  # Linear: 1s, 2s, ...

    # Queue cleanup sweep
    CLEANUP_INTERVAL: int = 60 * 30
    CLEANUP_RETENTION: int = 60 * 60 * 24
    CLEANUP_COMPLETED_THRESHOLD: int = 100
    CLEANUP_FAILED_THRESHOLD: int = 50

    # Status projection
    AVERAGE_SECONDS_PER_JOB: int = 30  # Heuristic, not measured

    # Code generation
    TEMPLATE_DIR: str = str(PACKAGE_ROOT / "templates" / "preview-template")
    PREVIEW_OUTPUT_DIR: str = tempfile.gettempdir()

    # Deployment (Netlify)
    NETLIFY_TOKEN: str = ""
    NETLIFY_API_URL: str = "https://api.netlify.com/api/v1"

    @field_validator('NETLIFY_TOKEN', mode='before')
    @classmethod
    def strip_tokens(cls, v):
        """Strip whitespace and newlines from tokens loaded from secrets."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator('QUEUE_CONCURRENCY', 'JOB_MAX_ATTEMPTS', 'GENERATION_MAX_ATTEMPTS')
    @classmethod
    def at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
