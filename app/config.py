"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "change-me-in-production"


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Movies API", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")
    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )
    api_prefix: str = Field(default="/api/v1", alias="API_PREFIX")
    cors_origin: str = Field(default="http://localhost:3000", alias="CORS_ORIGIN")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./movies.db", alias="DATABASE_URL"
    )

    jwt_secret: str = Field(default=DEFAULT_JWT_SECRET, alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    jwt_expires_in: int = Field(
        default=604_800, alias="JWT_EXPIRES_IN", ge=60
    )
    bcrypt_rounds: int = Field(default=12, alias="BCRYPT_ROUNDS", ge=4, le=16)

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_base_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_BASE_URL"
    )
    tmdb_image_base_url: str = Field(
        default="https://image.tmdb.org/t/p", alias="TMDB_IMAGE_BASE_URL"
    )
    tmdb_timeout: float = Field(default=10.0, alias="TMDB_TIMEOUT", gt=0, le=60)

    admin_email: str | None = Field(default=None, alias="ADMIN_EMAIL")
    admin_password: str | None = Field(default=None, alias="ADMIN_PASSWORD")

    @field_validator("api_prefix", mode="before")
    @classmethod
    def _normalise_prefix(cls, value: object) -> str:
        """Ensure the API prefix starts with a slash and has no trailing one."""

        if value is None:
            return ""
        prefix = str(value).strip().rstrip("/")
        if prefix and not prefix.startswith("/"):
            prefix = f"/{prefix}"
        return prefix

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: object) -> str:
        return str(value or "INFO").strip().upper()

    @field_validator("tmdb_image_base_url", mode="before")
    @classmethod
    def _strip_image_base(cls, value: object) -> str:
        return str(value or "").strip().rstrip("/")

    @model_validator(mode="after")
    def _require_real_secret(self) -> "Settings":
        """Refuse to run production deployments with the placeholder secret."""

        if self.environment == "production" and self.jwt_secret == DEFAULT_JWT_SECRET:
            raise ValueError("JWT_SECRET must be set in production")
        return self

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
