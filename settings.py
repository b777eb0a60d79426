"""
Configuration loaded from environment variables (and `.env`) with pydantic-settings.
"""
from __future__ import annotations

import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

basedir = os.path.abspath(os.path.dirname(__file__))


class Settings(BaseSettings):
    """Book API settings."""

    # Database
    database_url: str = f"sqlite:///{os.path.join(basedir, 'data/library.sqlite')}"

    # Cache
    redis_url: str = "redis://localhost:6379/0"
    cache_namespace: str = "bookapi"
    cache_ttl_seconds: int = 3600

    # Security
    secret_key: str = Field(default="dev-secret-key", validation_alias="FLASK_SECRET_KEY")
    jwt_secret_key: str = "dev-jwt-secret"
    jwt_algorithm: str = "HS256"
    jwt_ttl_seconds: int = 3600

    # Pagination
    default_page: int = 1
    default_limit: int = 3
    max_limit: int = 100

    # Versioning
    default_api_version: str = "1.0"

    # Logging
    log_level: str = "INFO"
    debug: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("default_limit", "max_limit", "default_page")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("pagination settings must be >= 1")
        return v

    def is_sqlite_file(self) -> bool:
        return self.database_url.startswith("sqlite:///") and ":memory:" not in self.database_url
