"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, HttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="ReelScout", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_access_token: str | None = Field(
        default=None,
        alias="TMDB_ACCESS_TOKEN",
        validation_alias=AliasChoices("TMDB_ACCESS_TOKEN", "MOVIEDB_ACCESS_TOKEN"),
    )
    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_language: str = Field(default="en-US", alias="TMDB_LANGUAGE")

    upstream_page_size: int = Field(
        default=20, alias="UPSTREAM_PAGE_SIZE", ge=1, le=100
    )
    request_deadline_seconds: float = Field(
        default=15.0, alias="REQUEST_DEADLINE"
    )
    response_cache_seconds: int = Field(default=3_600, alias="CACHE_TTL", ge=0)
    degraded_cache_seconds: int = Field(
        default=30, alias="DEGRADED_CACHE_TTL", ge=0
    )
    default_watch_region: str = Field(default="US", alias="WATCH_REGION")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("tmdb_access_token", "tmdb_api_key", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("default_watch_region", mode="before")
    @classmethod
    def _normalise_region(cls, value: object) -> object:
        if value is None:
            return "US"
        if isinstance(value, str):
            return value.strip().upper() or "US"
        return value

    @field_validator("request_deadline_seconds")
    @classmethod
    def _positive_deadline(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("REQUEST_DEADLINE must be a positive number of seconds")
        return value

    @model_validator(mode="after")
    def _check_cache_windows(self) -> "Settings":
        """Degraded responses must never be cached longer than real ones."""

        if self.degraded_cache_seconds > self.response_cache_seconds:
            raise ValueError("DEGRADED_CACHE_TTL must not exceed CACHE_TTL")
        return self

    @property
    def has_tmdb_credentials(self) -> bool:
        return bool(self.tmdb_access_token or self.tmdb_api_key)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
