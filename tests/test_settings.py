"""
Tests for environment driven configuration
"""

import pytest
from pydantic import ValidationError

from config.settings import (
    DEFAULT_CACHE_DIRECTORY,
    CacheBackend,
    Environment,
    LogLevel,
    get_settings,
)


def test_defaults():
    settings = get_settings()

    assert settings.environment == Environment.DEVELOPMENT
    assert settings.server.ip == "0.0.0.0"
    assert settings.server.port == 9090
    assert settings.registry.namespace == "dumbometrics"
    assert settings.cache.backend == CacheBackend.FILESYSTEM
    assert settings.cache.directory == DEFAULT_CACHE_DIRECTORY
    assert settings.cache.directory.parts[-2:] == ("achetronic", "dumbometrics")
    assert settings.cache.key == "metrics"
    assert settings.examples.enabled is False
    assert settings.logging.log_level == LogLevel.INFO
    assert settings.logging.log_to_file is False


def test_server_binding_from_environment(monkeypatch):
    monkeypatch.setenv("DUMBOMETRICS_METRICS_IP", "127.0.0.1")
    monkeypatch.setenv("DUMBOMETRICS_METRICS_PORT", "9100")

    server = get_settings().server

    assert server.ip == "127.0.0.1"
    assert server.port == 9100


@pytest.mark.parametrize("port", ["0", "70000", "not-a-port"])
def test_invalid_port_rejected(monkeypatch, port):
    monkeypatch.setenv("DUMBOMETRICS_METRICS_PORT", port)

    with pytest.raises(ValidationError):
        get_settings()


def test_namespace_from_environment(monkeypatch):
    monkeypatch.setenv("DUMBOMETRICS_METRICS_NAMESPACE", "MyShop")

    assert get_settings().registry.namespace == "myshop"


def test_short_namespace_variable_still_accepted(monkeypatch):
    monkeypatch.setenv("METRICS_NAMESPACE", "legacy")

    assert get_settings().registry.namespace == "legacy"


def test_prefixed_namespace_variable_wins(monkeypatch):
    monkeypatch.setenv("DUMBOMETRICS_METRICS_NAMESPACE", "shop")
    monkeypatch.setenv("METRICS_NAMESPACE", "legacy")

    assert get_settings().registry.namespace == "shop"


def test_blank_namespace_falls_back_to_default(monkeypatch):
    monkeypatch.setenv("METRICS_NAMESPACE", "   ")

    assert get_settings().registry.namespace == "dumbometrics"


def test_invalid_namespace_rejected(monkeypatch):
    monkeypatch.setenv("METRICS_NAMESPACE", "my-shop")

    with pytest.raises(ValidationError):
        get_settings()


def test_cache_settings_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("DUMBOMETRICS_CACHE_BACKEND", "memory")
    monkeypatch.setenv("DUMBOMETRICS_CACHE_DIRECTORY", str(tmp_path))
    monkeypatch.setenv("DUMBOMETRICS_CACHE_KEY", "shop-metrics")

    cache = get_settings().cache

    assert cache.backend == CacheBackend.MEMORY
    assert cache.directory == tmp_path
    assert cache.key == "shop-metrics"


@pytest.mark.parametrize("value", ["fs", "FS", "filesystem"])
def test_filesystem_backend_selectors(monkeypatch, value):
    monkeypatch.setenv("DUMBOMETRICS_CACHE_BACKEND", value)

    assert get_settings().cache.backend == CacheBackend.FILESYSTEM


def test_unknown_cache_backend_rejected(monkeypatch):
    monkeypatch.setenv("DUMBOMETRICS_CACHE_BACKEND", "redis")

    with pytest.raises(ValidationError):
        get_settings()


def test_examples_and_environment(monkeypatch):
    monkeypatch.setenv("DUMBOMETRICS_EXAMPLES_ENABLED", "true")
    monkeypatch.setenv("DUMBOMETRICS_EXAMPLES_DELAY_SECONDS", "0.5")
    monkeypatch.setenv("ENV", "production")

    settings = get_settings()

    assert settings.examples.enabled is True
    assert settings.examples.delay_seconds == 0.5
    assert settings.is_production
