"""Application configuration models."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Movie Catalog", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./movies.db", alias="DATABASE_URL"
    )

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_timeout_seconds: float = Field(
        default=15.0, alias="TMDB_TIMEOUT", gt=0, le=120
    )
    tmdb_max_retries: int = Field(
        default=2, alias="TMDB_MAX_RETRIES", ge=0, le=10
    )

    cache_ttl_seconds: int = Field(default=300, alias="CACHE_TTL", ge=1)
    cache_max_entries: int = Field(default=100, alias="CACHE_MAX_ENTRIES", ge=1)

    sync_default_pages: int = Field(default=5, alias="SYNC_PAGES", ge=1, le=500)

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("tmdb_api_key", mode="before")
    @classmethod
    def _strip_blank_key(cls, value: object) -> object:
        """Treat blank API keys as missing."""

        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: object) -> str:
        """Accept level names case-insensitively."""

        if value is None:
            return "INFO"
        level = str(value).strip().upper()
        if not level:
            return "INFO"
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
