"""
Killlog Sync Centralized Configuration

Provides validated, type-safe access to all environment variables using Pydantic Settings.
All environment variables are validated at first access with helpful error messages.

Usage:
    from killlog_sync.core.config import get_settings

    settings = get_settings()
    if settings.log_level == "DEBUG":
        ...

Data Paths:
    All data is stored in {instance_root}/cache/:
    - cache/killlog.db: Credentials, characters, killmails and global storage values

Environment Variables:
    KILLLOG_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    KILLLOG_DEBUG: Legacy debug flag (enables DEBUG level if set)
    KILLLOG_LOG_JSON: Output logs as JSON
    KILLLOG_INSTANCE_ROOT: Override the instance root directory
    KILLLOG_API_BASE_URL: Base URL of the XML API
    KILLLOG_API_TIMEOUT: Request timeout in seconds
    KILLLOG_NO_RETRY: Disable HTTP retry logic
    KILLLOG_FETCHES_PER_SECOND: Shard count used when none is stored
    KILLLOG_SHARD_LOCK_TIMEOUT: Seconds to wait for a shard lock
    KILLLOG_CYCLE_INTERVAL: Seconds between scheduling cycles (killlog-run)

Note that fetches_per_second here is only the fallback. The live value is the
APIFetchesPerSecond entry in the storage table, read fresh every cycle.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_project_root() -> Path | None:
    """
    Find the project root by searching upward for pyproject.toml.

    Returns:
        Directory containing pyproject.toml, or None if not found
    """
    current = Path(__file__).resolve().parent

    for _ in range(10):  # Limit search depth
        if (current / "pyproject.toml").exists():
            return current
        parent = current.parent
        if parent == current:
            break  # Reached filesystem root
        current = parent

    return None


def _find_project_env_file() -> Path | None:
    """Return the project .env file if one exists next to pyproject.toml."""
    root = _find_project_root()
    if root is None:
        return None
    env_file = root / ".env"
    return env_file if env_file.exists() else None


def _find_instance_root() -> Path:
    """
    Find the instance root directory.

    Resolution order:
    1. Project root (directory containing pyproject.toml)
    2. Current working directory (fallback)

    KILLLOG_INSTANCE_ROOT is applied by the settings model itself.
    """
    return _find_project_root() or Path.cwd()


# Resolve paths at module load time
_ENV_FILE = _find_project_env_file()
_INSTANCE_ROOT = _find_instance_root()


class KilllogSettings(BaseSettings):
    """
    Killlog Sync configuration settings with validation.

    Environment variables are automatically loaded with the KILLLOG_ prefix.
    All settings have sensible defaults and validation.
    """

    model_config = SettingsConfigDict(
        env_prefix="KILLLOG_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # =========================================================================
    # Logging Configuration
    # =========================================================================

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Log level for killlog_sync components",
    )

    debug: bool = Field(
        default=False,
        description="Legacy debug flag (enables DEBUG level if set)",
    )

    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format for machine parsing",
    )

    # =========================================================================
    # Remote API
    # =========================================================================

    api_base_url: str = Field(
        default="https://api.eveonline.com",
        description="Base URL of the XML API",
    )

    api_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Request timeout in seconds",
    )

    user_agent: str = Field(
        default="killlog-sync/1.0",
        description="User-Agent header sent with every API request",
    )

    no_retry: bool = Field(
        default=False,
        description="Disable HTTP retry logic (tenacity)",
    )

    # =========================================================================
    # Scheduling
    # =========================================================================

    fetches_per_second: int = Field(
        default=30,
        ge=1,
        description="Shard count used when APIFetchesPerSecond is not stored",
    )

    shard_lock_timeout: float = Field(
        default=60.0,
        ge=0,
        description="Seconds a shard launch waits for the previous worker",
    )

    cycle_interval: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between scheduling cycles in killlog-run",
    )

    # =========================================================================
    # Data Paths
    # =========================================================================

    instance_root: Path = Field(
        default=_INSTANCE_ROOT,
        description="Instance root directory (project root containing pyproject.toml)",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str) -> str:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def effective_log_level(self) -> str:
        """
        Get effective log level, respecting legacy KILLLOG_DEBUG.

        Priority:
        1. Explicit KILLLOG_LOG_LEVEL
        2. KILLLOG_DEBUG=1 -> DEBUG
        3. Default: WARNING
        """
        if self.debug and self.log_level == "WARNING":
            return "DEBUG"
        return self.log_level

    @property
    def log_level_int(self) -> int:
        """Get effective log level as logging constant."""
        return getattr(logging, self.effective_log_level)

    @property
    def cache_dir(self) -> Path:
        """Path to cache directory."""
        return self.instance_root / "cache"

    @property
    def db_path(self) -> Path:
        """Path to the killlog database."""
        return self.cache_dir / "killlog.db"


# =============================================================================
# Singleton Accessor
# =============================================================================


@lru_cache(maxsize=1)
def get_settings() -> KilllogSettings:
    """
    Get the singleton settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    The settings are validated at first access.
    """
    return KilllogSettings()


def reset_settings() -> None:
    """
    Reset the settings cache (for testing).

    After calling this, the next get_settings() call will
    reload settings from environment variables.
    """
    get_settings.cache_clear()


# =============================================================================
# Convenience Functions
# =============================================================================


def is_retry_disabled() -> bool:
    """Check if retry logic is disabled via environment."""
    return get_settings().no_retry
