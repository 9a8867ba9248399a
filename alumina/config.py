"""
Configuration and settings for the Alumina backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")

    # Database (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, alias="ALUMINA_USE_IN_MEMORY_BACKENDS"
    )

    # Calendar used for "today", streaks and time-based achievements
    timezone: str = Field(default="UTC", alias="ALUMINA_TIMEZONE")

    # Gamification
    points_per_task: int = Field(default=10, alias="ALUMINA_POINTS_PER_TASK")
    points_per_level: int = Field(default=1000, alias="ALUMINA_POINTS_PER_LEVEL")

    # S3-compatible storage for the video library
    storage_endpoint: Optional[str] = Field(default=None, alias="STORAGE_ENDPOINT")
    storage_region: Optional[str] = Field(default=None, alias="STORAGE_REGION")
    storage_bucket: Optional[str] = Field(default=None, alias="STORAGE_BUCKET")
    aws_access_key_id: Optional[str] = Field(default=None, alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: Optional[str] = Field(
        default=None, alias="AWS_SECRET_ACCESS_KEY"
    )
    video_url_expiry_seconds: int = Field(
        default=3600, alias="ALUMINA_VIDEO_URL_EXPIRY_SECONDS"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
