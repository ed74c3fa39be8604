"""Configuration and logging setup for Switchyard."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any, Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Default config file location
CONFIG_FILE_PATH = Path.home() / ".config" / "switchyard" / "config.toml"

_SECRET_FIELDS = ("news_api_key",)


def _load_config_file(config_path: Path | None = None) -> dict[str, Any]:
    """Load configuration from TOML file if it exists.

    Args:
        config_path: Path to config file. Defaults to ~/.config/switchyard/config.toml

    Returns:
        Dictionary of configuration values, empty dict if file doesn't exist
    """
    path = config_path or CONFIG_FILE_PATH
    if not path.exists():
        return {}

    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        # Config file is optional
        logging.getLogger(__name__).warning(
            "Failed to load config file %s: %s", path, type(e).__name__
        )
        return {}


class Settings(BaseSettings):
    """Switchyard settings loaded from environment variables.

    Settings are loaded in priority order:
    1. Environment variables (highest priority)
    2. .env file
    3. ~/.config/switchyard/config.toml (lowest priority)

    Every tunable policy constant of the router lives here so that
    deployments can override it without code changes.
    """

    model_config = SettingsConfigDict(
        env_prefix="SWITCHYARD_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Upstream credentials - NEVER log these
    news_api_key: SecretStr | None = None

    # Shared cache tier
    cache_backend: Literal["memory", "redis", "sqlite"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    sqlite_cache_path: str = "~/.cache/switchyard/cache.db"

    # Cache TTL policy (seconds)
    ttl_weather: int = 1800  # 30 minutes
    ttl_news: int = 3600  # 1 hour
    ttl_currency: int = 21600  # 6 hours
    ttl_time: int = 0  # clock readings are never cached

    # Rate limits (requests per window)
    session_limit: int = 50
    user_limit: int = 100
    address_limit: int = 500
    rate_window_seconds: int = 3600
    block_seconds: int = 300
    high_cpu_percent: float = 80.0
    high_memory_percent: float = 85.0
    sweep_interval_seconds: int = 300

    # Per-source lookup timeouts (seconds)
    timeout_live_data: float = 10.0
    timeout_private_documents: float = 5.0
    timeout_knowledge_base: float = 5.0

    # Intent classifier policy
    statistical_threshold: float = 0.6
    classifier_weight: float = 0.7
    entity_weight: float = 0.3

    # Default confidence attached to successful source lookups
    confidence_live_data: float = 0.9
    confidence_private_documents: float = 0.9
    confidence_knowledge_base: float = 0.8

    # Search limits
    private_document_limit: int = 5
    knowledge_base_limit: int = 3
    knowledge_base_path: str | None = None

    # Logging
    log_level: str = "INFO"

    @model_validator(mode="before")
    @classmethod
    def load_from_config_file(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Load values from config file for any fields not set via env vars."""
        config_data = _load_config_file()

        if not config_data:
            return values

        # Config file uses the same keys as settings fields
        for key in cls.model_fields:
            if key not in values or values[key] is None:
                if key in config_data:
                    values[key] = config_data[key]

        return values

    def has_news_credentials(self) -> bool:
        """Check if a NewsAPI key is configured."""
        return bool(self.news_api_key)

    def ttl_for(self, subtype: str) -> int:
        """Return the cache TTL for a live-data subtype (0 means do not cache)."""
        return int(getattr(self, f"ttl_{subtype}", 0))

    def __repr__(self) -> str:
        """Safe repr that masks credential values."""
        fields = []
        for name in type(self).model_fields:
            value = getattr(self, name)
            if name in _SECRET_FIELDS:
                if value is not None:
                    fields.append(f"{name}=SecretStr('**********')")
                else:
                    fields.append(f"{name}=None")
            else:
                fields.append(f"{name}={value!r}")
        return f"Settings({', '.join(fields)})"

    def __str__(self) -> str:
        """Safe str representation that masks credential values."""
        return self.__repr__()


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the singleton Settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset the singleton Settings instance.

    Primarily used for testing to ensure fresh settings are loaded.
    """
    global _settings
    _settings = None


def configure_logging(level: str = "INFO") -> None:
    """Configure stdlib logging for Switchyard."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Suppress httpx debug logs (too verbose)
    logging.getLogger("httpx").setLevel(logging.WARNING)


__all__ = [
    "Settings",
    "get_settings",
    "reset_settings",
    "configure_logging",
    "CONFIG_FILE_PATH",
]
