"""
Tests for configuration management in `hostwatch/config.py`.

Covers:
- Environment parsing and debug defaults
- Logging level coercion to the expected Literal
- Monitoring, history and threshold settings from the environment
- get_config cache behavior
- AppConfig validation (debug only allowed in development)
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from hostwatch.config import (
    DEFAULT_HISTORY_PATH,
    AppConfig,
    HistoryConfig,
    LoggingConfig,
    MonitoringConfig,
    get_config,
    load_config_from_env,
    reset_config_cache,
)
from hostwatch.logging_setup import configure_logging

ENV_VARS = (
    "ENVIRONMENT",
    "LOG_LEVEL",
    "EVALUATION_INTERVAL_SECONDS",
    "FETCH_TIMEOUT_SECONDS",
    "MAX_CONCURRENT_FETCHES",
    "TOP_PROCESS_COUNT",
    "HISTORY_PATH",
    "HISTORY_MAX_ENTRIES",
    "THRESHOLDS_PATH",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Start every test from a known environment and a cold config cache."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config_cache()
    yield
    reset_config_cache()


def test_load_config_dev_defaults() -> None:
    config = load_config_from_env()

    assert config.environment == "development"
    assert config.debug is True
    assert config.logging.level == "INFO"
    assert config.logging.format == "console"
    assert config.monitoring.evaluation_interval_seconds == 15.0
    assert config.monitoring.top_process_count == 5
    assert config.history.path == DEFAULT_HISTORY_PATH
    assert config.history.max_entries == 500
    assert config.thresholds.overrides_path is None


def test_load_config_production(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "prod")

    config = load_config_from_env()

    assert config.environment == "production"
    assert config.debug is False
    assert config.logging.format == "json"


@pytest.mark.parametrize(
    "raw,expected",
    [("debug", "DEBUG"), ("warning", "WARNING"), ("verbose", "INFO")],
)
def test_log_level_coercion(monkeypatch: pytest.MonkeyPatch, raw: str, expected: str) -> None:
    monkeypatch.setenv("LOG_LEVEL", raw)

    assert load_config_from_env().logging.level == expected


def test_monitoring_and_storage_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("EVALUATION_INTERVAL_SECONDS", "5")
    monkeypatch.setenv("FETCH_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("TOP_PROCESS_COUNT", "3")
    monkeypatch.setenv("HISTORY_PATH", str(tmp_path / "history.json"))
    monkeypatch.setenv("HISTORY_MAX_ENTRIES", "50")
    monkeypatch.setenv("THRESHOLDS_PATH", str(tmp_path / "thresholds.json"))

    config = load_config_from_env()

    assert config.monitoring.evaluation_interval_seconds == 5.0
    assert config.monitoring.fetch_timeout_seconds == 2.5
    assert config.monitoring.top_process_count == 3
    assert config.history.path == tmp_path / "history.json"
    assert config.history.max_entries == 50
    assert config.thresholds.overrides_path == tmp_path / "thresholds.json"


def test_invalid_values_fail_fast(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EVALUATION_INTERVAL_SECONDS", "0")

    with pytest.raises(ValueError):
        load_config_from_env()


def test_get_config_is_cached(monkeypatch: pytest.MonkeyPatch) -> None:
    first = get_config()
    monkeypatch.setenv("ENVIRONMENT", "production")

    assert get_config() is first

    reset_config_cache()
    assert get_config().environment == "production"


def test_debug_only_allowed_in_development() -> None:
    with pytest.raises(ValueError, match="debug mode"):
        AppConfig(environment="production", debug=True)


def test_sub_config_validation() -> None:
    with pytest.raises(ValueError):
        MonitoringConfig(max_concurrent_fetches=0)

    with pytest.raises(ValueError):
        HistoryConfig(max_entries=0)


@pytest.mark.parametrize(
    "fmt,renderer",
    [("json", structlog.processors.JSONRenderer), ("console", structlog.dev.ConsoleRenderer)],
)
def test_configure_logging_picks_renderer(fmt: str, renderer: type) -> None:
    try:
        configure_logging(LoggingConfig(level="DEBUG", format=fmt))

        assert structlog.is_configured()
        assert isinstance(structlog.get_config()["processors"][-1], renderer)
    finally:
        structlog.reset_defaults()
