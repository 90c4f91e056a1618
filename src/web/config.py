"""
Configuration for the Article Insight web service.

Environment-based settings using Pydantic BaseSettings. Queue sizing
and LLM settings live in src/utils/config.py.
"""
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

DATA_DIR = Path(__file__).parent.parent.parent / "data"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = f"sqlite:///{DATA_DIR / 'article_insight.db'}"

    # Scheduler
    scheduler_enabled: bool = True
    retry_interval_minutes: int = 5
    cleanup_hour: int = 3  # daily job cleanup
    cleanup_minute: int = 0

    # Application
    app_title: str = "Article Insight"

    @field_validator("database_url")
    @classmethod
    def ensure_sqlite_dir(cls, v):
        if v.startswith("sqlite:///") and ":memory:" not in v:
            Path(v[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global settings instance
settings = Settings()
