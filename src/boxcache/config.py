"""
Configuration management using pydantic-settings.

Loads configuration from BOXCACHE_* environment variables and .env files.
Validates fields and provides typed access to settings.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal
from urllib.parse import urlsplit

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BOX_NAME = "bd_cached"
DEFAULT_REGISTRY_KEY = "bd_boxes"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Storage:
        CACHE_DIR: Directory for the content store database and blobs
        LEDGER_PATH: SQLite ledger file (defaults to CACHE_DIR/ledger.db)

    Boxes:
        DEFAULT_BOX_NAME: Box used when a caller omits one
        REGISTRY_KEY: Ledger key holding the set of box names
        VAULTS: Comma-separated namespaces tidied at startup

    Fetching:
        BASE_URL: Base for resolving relative URLs
        FETCH_TIMEOUT, FETCH_MAX_RETRIES, FETCH_BACKOFF_SECONDS,
        FETCH_CONCURRENCY, MAX_CONTENT_BYTES, USER_AGENT
    """

    model_config = SettingsConfigDict(
        env_prefix="BOXCACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    CACHE_DIR: Path = Field(default=Path(".boxcache"), description="Cache directory")
    LEDGER_PATH: Path | None = Field(
        default=None, description="SQLite ledger path (default: CACHE_DIR/ledger.db)"
    )

    # Boxes
    DEFAULT_BOX_NAME: str = Field(
        default=DEFAULT_BOX_NAME, min_length=1, description="Default box name"
    )
    REGISTRY_KEY: str = Field(
        default=DEFAULT_REGISTRY_KEY, min_length=1, description="Ledger key of the box registry"
    )
    VAULTS: str = Field(
        default="", description="Comma-separated cache namespaces tidied at startup"
    )

    # Fetching
    BASE_URL: str | None = Field(
        default=None, description="Base URL for resolving relative URLs"
    )
    FETCH_TIMEOUT: float = Field(default=30.0, gt=0.0, description="Request timeout in seconds")
    FETCH_MAX_RETRIES: int = Field(
        default=2, ge=0, le=10, description="Retries after the first failed attempt"
    )
    FETCH_BACKOFF_SECONDS: float = Field(
        default=0.5, ge=0.0, description="Initial exponential backoff between retries"
    )
    FETCH_CONCURRENCY: int = Field(
        default=5, ge=1, le=64, description="Maximum concurrent fetches per batch"
    )
    MAX_CONTENT_BYTES: int = Field(
        default=10 * 1024 * 1024, gt=0, description="Largest response body accepted"
    )
    USER_AGENT: str = Field(
        default="boxcache/0.1 (+https://pypi.org/project/boxcache/)",
        description="User-Agent header sent with fetches",
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    LOG_FILE: Path | None = Field(default=None, description="JSON-lines log file")

    @field_validator("BASE_URL")
    @classmethod
    def validate_base_url(cls, v: str | None) -> str | None:
        """Validate that BASE_URL is an absolute http(s) URL."""
        if v is None or not v.strip():
            return None
        parts = urlsplit(v.strip())
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError("BASE_URL must be an absolute http(s) URL")
        return v.strip()

    @model_validator(mode="after")
    def validate_box_names(self) -> Settings:
        """Ensure the default box cannot overwrite the registry entry."""
        if self.DEFAULT_BOX_NAME == self.REGISTRY_KEY:
            raise ValueError("DEFAULT_BOX_NAME and REGISTRY_KEY must differ")
        return self

    @property
    def ledger_path(self) -> Path:
        """Get the ledger database path."""
        return self.LEDGER_PATH or self.CACHE_DIR / "ledger.db"

    @property
    def vaults(self) -> list[str]:
        """Get the startup vault namespaces as a list."""
        return [v.strip() for v in self.VAULTS.split(",") if v.strip()]

    def ensure_directories(self) -> None:
        """Create the cache directory and ledger parent if they don't exist."""
        self.CACHE_DIR.mkdir(parents=True, exist_ok=True)
        self.ledger_path.parent.mkdir(parents=True, exist_ok=True)

    def display(self) -> dict[str, str | int | float | None]:
        """Return settings as a flat mapping for display."""
        return {
            "CACHE_DIR": str(self.CACHE_DIR),
            "LEDGER_PATH": str(self.ledger_path),
            "DEFAULT_BOX_NAME": self.DEFAULT_BOX_NAME,
            "REGISTRY_KEY": self.REGISTRY_KEY,
            "VAULTS": ", ".join(self.vaults) or None,
            "BASE_URL": self.BASE_URL,
            "FETCH_TIMEOUT": self.FETCH_TIMEOUT,
            "FETCH_MAX_RETRIES": self.FETCH_MAX_RETRIES,
            "FETCH_BACKOFF_SECONDS": self.FETCH_BACKOFF_SECONDS,
            "FETCH_CONCURRENCY": self.FETCH_CONCURRENCY,
            "MAX_CONTENT_BYTES": self.MAX_CONTENT_BYTES,
            "USER_AGENT": self.USER_AGENT,
            "LOG_LEVEL": self.LOG_LEVEL,
            "LOG_FILE": str(self.LOG_FILE) if self.LOG_FILE else None,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
