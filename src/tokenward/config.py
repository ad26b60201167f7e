# Tokenward configuration — environment-driven settings.
# Created: 2026-10-19

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Tokenward settings, loaded from ``TOKENWARD_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TOKENWARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    config_dir: Path = Field(
        default_factory=lambda: Path.home() / ".tokenward",
        description="Directory for file-backed authorization records",
    )

    # Pending authorizations older than this are dropped from the state cache
    state_ttl_seconds: int = Field(default=600, ge=1)

    http_timeout: float = Field(
        default=15.0,
        gt=0,
        description="Timeout in seconds for calls to the OAuth server",
    )

    expiry_leeway_seconds: int = Field(
        default=0,
        ge=0,
        description="Treat tokens as expired this many seconds early",
    )

    refresh_sends_client_secret: bool = Field(
        default=False,
        description="Send the stored client secret with refresh_token exchanges",
    )

    log_level: str = Field(default="INFO")


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()


def get_config_dir() -> Path:
    """Get/create the tokenward config directory."""
    d = get_settings().config_dir
    d.mkdir(parents=True, exist_ok=True)
    return d


def configure_logging(level: str | None = None) -> None:
    """Apply the configured log level to the ``tokenward`` logger tree."""
    name = (level or get_settings().log_level).upper()
    logging.getLogger("tokenward").setLevel(getattr(logging, name, logging.INFO))
    logger.debug("tokenward log level set to %s", name)
