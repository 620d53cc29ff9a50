"""Tests for configuration loading and logging setup."""

import pytest
import structlog
from pydantic import ValidationError

from siteaccess.core.config import Settings, get_settings
from siteaccess.core.logging import configure_logging


def test_defaults():
    cfg = Settings(_env_file=None)
    assert cfg.cache_backend == "memory"
    assert cfg.role_cache_ttl_seconds == 900
    assert cfg.expiring_soon_days == 7
    assert cfg.final_notice_days == 1
    assert cfg.log_format == "json"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("SITEACCESS_CACHE_BACKEND", "redis")
    monkeypatch.setenv("SITEACCESS_ROLE_CACHE_TTL_SECONDS", "60")
    monkeypatch.setenv("SITEACCESS_EXPIRING_SOON_DAYS", "14")

    cfg = Settings(_env_file=None)

    assert cfg.cache_backend == "redis"
    assert cfg.role_cache_ttl_seconds == 60
    assert cfg.expiring_soon_days == 14


def test_invalid_backend(monkeypatch):
    monkeypatch.setenv("SITEACCESS_CACHE_BACKEND", "memcached")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_get_settings_is_cached():
    get_settings.cache_clear()
    try:
        assert get_settings() is get_settings()
    finally:
        get_settings.cache_clear()


@pytest.mark.parametrize("fmt", ["json", "console"])
def test_configure_logging(fmt):
    configure_logging("debug", fmt)
    try:
        structlog.get_logger().info("config.test", fmt=fmt)
    finally:
        structlog.reset_defaults()
