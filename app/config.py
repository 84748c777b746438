"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="CineLoop", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=5000, alias="PORT")

    database_url: str | None = Field(default=None, alias="DATABASE_URL")
    seed_sample_titles: bool = Field(default=True, alias="SEED_SAMPLE_TITLES")

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_image_url: HttpUrl = Field(
        default="https://image.tmdb.org/t/p", alias="TMDB_IMAGE_URL"
    )
    catalog_timeout_seconds: float = Field(
        default=10.0, alias="CATALOG_TIMEOUT", gt=0, le=60
    )

    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_api_url: HttpUrl = Field(
        default="https://api.openai.com/v1", alias="OPENAI_API_URL"
    )
    openai_model: str = Field(default="gpt-4o", alias="OPENAI_MODEL")
    chat_timeout_seconds: float = Field(
        default=30.0, alias="CHAT_TIMEOUT", gt=0, le=120
    )

    identity_header: str = Field(default="X-User-Id", alias="IDENTITY_HEADER")
    identity_name_header: str = Field(
        default="X-User-Name", alias="IDENTITY_NAME_HEADER"
    )
    dev_user_id: str = Field(default="dev-user", alias="DEV_USER_ID")
    dev_username: str = Field(default="dev", alias="DEV_USERNAME")

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("database_url", "tmdb_api_key", "openai_api_key", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        """Treat blank strings as missing values."""

        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("database_url")
    @classmethod
    def _normalise_database_url(cls, value: str | None) -> str | None:
        """Select the async driver for bare Postgres connection strings."""

        if value is None:
            return None
        value = value.strip()
        for prefix in ("postgres://", "postgresql://"):
            if value.startswith(prefix):
                return "postgresql+asyncpg://" + value[len(prefix):]
        return value

    @property
    def has_database(self) -> bool:
        return self.database_url is not None

    @property
    def has_catalog(self) -> bool:
        return self.tmdb_api_key is not None

    @property
    def has_recommendations(self) -> bool:
        return self.openai_api_key is not None

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
