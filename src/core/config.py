"""Configuration management for the brokerage engine.

All configuration is loaded from environment variables and/or .env file.
"""
from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Project root detection
PROJECT_ROOT = Path(__file__).resolve().parents[2]
ENV_FILE = PROJECT_ROOT / ".env"

DATABASE_FILE = PROJECT_ROOT / "brokerage.db"
ABSOLUTE_DATABASE_URL = f"sqlite:///{DATABASE_FILE.as_posix()}"


def _resolve_database_url(url: str) -> str:
    """
    Convert relative SQLite paths to absolute paths based on PROJECT_ROOT.

    In-memory URLs and non-SQLite URLs are returned unchanged.
    """
    if not url.startswith("sqlite:///"):
        return url

    path_part = url.replace("sqlite:///", "")
    if path_part == ":memory:" or path_part == "":
        return url

    if path_part.startswith("./") or (not path_part.startswith("/") and ":" not in path_part):
        if path_part.startswith("./"):
            path_part = path_part[2:]

        absolute_path = PROJECT_ROOT / path_part
        return f"sqlite:///{absolute_path.as_posix()}"

    return url


class Settings(BaseSettings):
    """
    Runtime configuration powered by environment variables and .env overrides.

    All settings can be configured via:
    1. Environment variables (highest priority)
    2. .env file in project root (loaded automatically)
    3. Default values (lowest priority)
    """

    model_config = SettingsConfigDict(
        env_file=ENV_FILE if ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Database
    # -------------------------------------------------------------------------
    database_url: str = Field(
        default=ABSOLUTE_DATABASE_URL,
        alias="DATABASE_URL",
        description="SQLAlchemy connection string.",
    )
    db_pool_size: int = Field(default=5, alias="DB_POOL_SIZE", ge=1)
    db_max_overflow: int = Field(default=10, alias="DB_MAX_OVERFLOW", ge=0)
    db_pool_timeout: int = Field(default=30, alias="DB_POOL_TIMEOUT", ge=1)

    # -------------------------------------------------------------------------
    # Deals
    # -------------------------------------------------------------------------
    default_commission_rate: Decimal = Field(
        default=Decimal("5.0"),
        alias="DEFAULT_COMMISSION_RATE",
        ge=0,
        le=100,
        description="Commission percent applied when a deal is created without one.",
    )

    # -------------------------------------------------------------------------
    # Analytics
    # -------------------------------------------------------------------------
    view_dedup_window_minutes: int = Field(
        default=30,
        alias="VIEW_DEDUP_WINDOW_MINUTES",
        ge=1,
        description="Repeat views from one session inside this window are not stored.",
    )
    most_viewed_default_top: int = Field(default=10, alias="MOST_VIEWED_DEFAULT_TOP", ge=1, le=100)

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="text", alias="LOG_FORMAT")  # "text" or "json"
    environment: str = Field(default="local", alias="ENVIRONMENT")
    allowed_origins: str = Field(default="*", alias="ALLOWED_ORIGINS")
    api_port: int = Field(default=8000, alias="API_PORT", ge=1)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Ensure log format is valid."""
        lower = v.lower()
        if lower not in {"text", "json"}:
            raise ValueError("log_format must be 'text' or 'json'")
        return lower

    @model_validator(mode="after")
    def resolve_database_url(self) -> "Settings":
        """Convert relative SQLite paths to absolute paths."""
        self.database_url = _resolve_database_url(self.database_url)
        return self

    def is_sqlite(self) -> bool:
        """Check whether the configured database is SQLite."""
        return self.database_url.startswith("sqlite")

    def get_allowed_origins(self) -> List[str]:
        """Split ALLOWED_ORIGINS into a list for the CORS middleware."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded once and cached. To reload settings,
    call `get_settings.cache_clear()` first.
    """
    return Settings()


def reload_settings() -> Settings:
    """Clear settings cache and reload from environment."""
    get_settings.cache_clear()
    return get_settings()
