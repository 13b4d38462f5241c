"""Configuration utilities for the DriverDocs service."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator


def _env_flag(name: str, default: bool) -> bool:
    """Return a boolean flag derived from environment variables."""

    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


BASE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = BASE_DIR.parent

REUPLOAD_POLICIES = ("deny", "reopen")


def _load_environment() -> None:
    """Load environment variables from a ``.env`` file if present."""

    explicit_path = os.getenv("DRIVERDOCS_ENV_FILE")
    candidates = []

    if explicit_path:
        candidates.append(Path(explicit_path))

    candidates.append(PROJECT_ROOT / ".env")

    for candidate in candidates:
        try_path = candidate.expanduser()
        if try_path.exists():
            load_dotenv(try_path, override=False)


_load_environment()


def _database_url_default() -> str:
    """Return the configured database URL using legacy fallbacks."""

    return (
        os.getenv("DATABASE_URL") or os.getenv("DB_URL") or "sqlite:///./driverdocs.db"
    )


def _cors_origin_regex_default() -> str | None:
    """Return the default CORS origin regex allowing local network hosts."""

    raw = os.getenv(
        "CORS_ALLOW_ORIGIN_REGEX",
        r"http://(?:localhost|127\.0\.0\.1|0\.0\.0\.0|(?:\d{1,3}\.){3}\d{1,3})(?::\d{1,5})?",
    )
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


def _cors_origins_default() -> Tuple[str, ...]:
    return tuple(
        origin.strip()
        for origin in os.getenv("CORS_ALLOW_ORIGINS", "").split(",")
        if origin.strip()
    )


class Settings(BaseModel):
    """Application configuration loaded from environment variables."""

    # Environment-derived defaults go through the validators below.
    model_config = ConfigDict(validate_default=True)

    database_url: str = Field(default_factory=_database_url_default)
    database_echo: bool = Field(default_factory=lambda: _env_flag("DATABASE_ECHO", False))
    cors_allow_origins: Tuple[str, ...] = Field(default_factory=_cors_origins_default)
    cors_allow_origin_regex: str | None = Field(default_factory=_cors_origin_regex_default)
    host: str = Field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = Field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "info"))
    engine_log_level: str = Field(
        default_factory=lambda: os.getenv("ENGINE_LOG_LEVEL", "INFO")
    )
    persist_max_attempts: int = Field(
        default_factory=lambda: int(os.getenv("PERSIST_MAX_ATTEMPTS", "3"))
    )
    persist_timeout_s: float = Field(
        default_factory=lambda: float(os.getenv("PERSIST_TIMEOUT_S", "10"))
    )
    # Writes that outlive the timeout keep their worker; once all of them are
    # busy every persist times out until one finishes.
    persist_workers: int = Field(
        default_factory=lambda: int(os.getenv("PERSIST_WORKERS", "4"))
    )
    approved_reupload_policy: str = Field(
        default_factory=lambda: os.getenv("APPROVED_REUPLOAD_POLICY", "deny")
    )

    @field_validator("persist_max_attempts", "persist_workers", mode="after")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        return max(1, value)

    @field_validator("persist_timeout_s", mode="after")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("PERSIST_TIMEOUT_S must be greater than zero")
        return value

    @field_validator("approved_reupload_policy", mode="after")
    @classmethod
    def _normalise_policy(cls, value: str) -> str:
        policy = value.strip().lower()
        if policy not in REUPLOAD_POLICIES:
            raise ValueError(
                f"APPROVED_REUPLOAD_POLICY must be one of {', '.join(REUPLOAD_POLICIES)}"
            )
        return policy

    @field_validator("engine_log_level", mode="after")
    @classmethod
    def _normalise_log_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the cached settings so that subsequent calls reload from the environment."""

    get_settings.cache_clear()
