"""
Configuration and settings for the Taskboard API.
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

    api_prefix: str = Field(default="/api/v1")
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # Database (Postgres expected; any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="TASKBOARD_USE_IN_MEMORY_BACKENDS"
    )

    # Tokens
    jwt_secret: str = Field(default="change-me")
    jwt_algorithm: str = Field(default="HS256")
    jwt_expires_hours: float = Field(default=24, gt=0)

    # Password hashing cost
    bcrypt_rounds: int = Field(default=10, ge=4, le=31)

    # Rate limiting
    rate_limit_max_requests: int = Field(default=100, ge=1)
    rate_limit_window_seconds: float = Field(default=15 * 60, gt=0)
    redis_url: Optional[str] = Field(default=None)
    redis_key_prefix: str = Field(default="taskboard:ratelimit")

    cors_origin: str = Field(default="http://localhost:3000")

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
