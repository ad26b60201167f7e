# Tests for tokenward/config.py
# Created: 2026-10-19

import logging
from pathlib import Path

from tokenward.config import Settings, configure_logging, get_config_dir, get_settings


def test_defaults(monkeypatch):
    monkeypatch.delenv("TOKENWARD_STATE_TTL_SECONDS", raising=False)
    settings = Settings()
    assert settings.state_ttl_seconds == 600
    assert settings.http_timeout == 15.0
    assert settings.expiry_leeway_seconds == 0
    assert settings.refresh_sends_client_secret is False
    assert settings.config_dir == Path.home() / ".tokenward"


def test_env_prefix(monkeypatch, tmp_path):
    monkeypatch.setenv("TOKENWARD_STATE_TTL_SECONDS", "120")
    monkeypatch.setenv("TOKENWARD_REFRESH_SENDS_CLIENT_SECRET", "true")
    monkeypatch.setenv("TOKENWARD_CONFIG_DIR", str(tmp_path))
    settings = Settings()
    assert settings.state_ttl_seconds == 120
    assert settings.refresh_sends_client_secret is True
    assert settings.config_dir == tmp_path


def test_get_config_dir_creates(monkeypatch, tmp_path):
    target = tmp_path / "nested" / "cfg"
    monkeypatch.setenv("TOKENWARD_CONFIG_DIR", str(target))
    get_settings.cache_clear()
    try:
        assert get_config_dir() == target
        assert target.is_dir()
    finally:
        get_settings.cache_clear()


def test_configure_logging():
    configure_logging("debug")
    assert logging.getLogger("tokenward").level == logging.DEBUG
    configure_logging("WARNING")
    assert logging.getLogger("tokenward").level == logging.WARNING
