"""
Configuration and settings for the Conecta backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Optional

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_ORIGINS = [
    "http://localhost:8081",
    "http://localhost:19006",
    "http://10.0.2.2:8081",
]

DEV_JWT_SECRET = "conecta-development-secret-change-me"


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("environment", "ENVIRONMENT", "NODE_ENV"),
    )
    port: int = Field(default=5001)
    log_level: str = Field(default="INFO")

    # Database (any SQLAlchemy URL; Postgres expected in production)
    database_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("database_url", "DATABASE_URL", "MONGO_URI"),
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "use_in_memory_backends", "CONECTA_USE_IN_MEMORY_BACKENDS"
        ),
    )

    # Authentication
    jwt_secret: str = Field(default=DEV_JWT_SECRET)
    jwt_expires_in: str = Field(default="30d")
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # Rate limiting (0 requests disables the limiter)
    rate_limit_window_ms: int = Field(default=900_000, ge=1)
    rate_limit_max_requests: int = Field(default=100, ge=0)

    # CORS
    allowed_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_ORIGINS)
    )
    frontend_url: Optional[str] = Field(default=None)

    # Cache (Redis optional)
    redis_url: Optional[str] = Field(default=None)
    redis_key_prefix: str = Field(default="conecta:")
    cache_ttl_seconds: int = Field(default=300, ge=1)
    cache_sweep_interval_seconds: float = Field(default=60.0, gt=0)
    batch_window_ms: int = Field(default=50, ge=0)

    @field_validator("database_url")
    @classmethod
    def _check_database_url(cls, value):
        # MONGO_URI is read as an alias; only SQL URLs can be used.
        if value and value.lower().startswith("mongodb"):
            raise ValueError(
                "DATABASE_URL must be a SQLAlchemy URL (e.g. postgresql://...); "
                "mongodb:// URIs are not supported"
            )
        return value

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _split_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @model_validator(mode="after")
    def _check_production(self) -> "Settings":
        if self.is_production:
            if not self.database_url and not self.use_in_memory_backends:
                raise ValueError("DATABASE_URL (or MONGO_URI) is required in production")
            if self.jwt_secret == DEV_JWT_SECRET:
                raise ValueError("JWT_SECRET must be set in production")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def cors_origins(self) -> list[str]:
        origins = list(self.allowed_origins)
        if self.frontend_url and self.frontend_url not in origins:
            origins.append(self.frontend_url)
        return origins


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
