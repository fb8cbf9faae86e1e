"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
- Secure defaults (history and threshold files live under the user's home)
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from .env file
load_dotenv()

APP_DIR = Path.home() / ".hostwatch"
DEFAULT_HISTORY_PATH = APP_DIR / "alert_history.json"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
Environment = Literal["development", "staging", "production"]


class MonitoringConfig(BaseModel):
    """Evaluation loop configuration."""

    evaluation_interval_seconds: float = Field(
        default=15.0, gt=0.0, description="Interval between evaluation cycles per session"
    )
    fetch_timeout_seconds: float = Field(
        default=10.0, gt=0.0, description="Timeout for each telemetry sub-source fetch"
    )
    max_concurrent_fetches: int = Field(
        default=10, gt=0, description="Maximum number of telemetry fetches in flight"
    )
    top_process_count: int = Field(
        default=5, gt=0, description="How many ranked processes are checked per cycle"
    )


class HistoryConfig(BaseModel):
    """Alert history storage."""

    path: Path = Field(default=DEFAULT_HISTORY_PATH, description="JSON file holding the history")
    max_entries: int = Field(default=500, gt=0, description="Capacity of the history log")


class ThresholdConfig(BaseModel):
    """Threshold overrides."""

    overrides_path: Path | None = Field(
        default=None, description="Optional JSON file overriding default threshold bands"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(default="INFO", description="Logging level")
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    environment: Environment = Field(default="development", description="Environment")
    debug: bool = Field(default=False, description="Enable debug mode")

    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    thresholds: ThresholdConfig = Field(default_factory=ThresholdConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Environment:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> LogLevel:
        v = val.strip().upper()
        return cast(
            LogLevel,
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    monitoring_config = MonitoringConfig(
        evaluation_interval_seconds=float(os.getenv("EVALUATION_INTERVAL_SECONDS", "15.0")),
        fetch_timeout_seconds=float(os.getenv("FETCH_TIMEOUT_SECONDS", "10.0")),
        max_concurrent_fetches=int(os.getenv("MAX_CONCURRENT_FETCHES", "10")),
        top_process_count=int(os.getenv("TOP_PROCESS_COUNT", "5")),
    )

    history_config = HistoryConfig(
        path=Path(os.getenv("HISTORY_PATH", str(DEFAULT_HISTORY_PATH))).expanduser(),
        max_entries=int(os.getenv("HISTORY_MAX_ENTRIES", "500")),
    )

    thresholds_path = os.getenv("THRESHOLDS_PATH")
    threshold_config = ThresholdConfig(
        overrides_path=Path(thresholds_path).expanduser() if thresholds_path else None,
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        monitoring=monitoring_config,
        history=history_config,
        thresholds=threshold_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def reset_config_cache() -> None:
    get_config.cache_clear()


def validate_config() -> None:
    """Validate configuration at startup."""
    try:
        config = get_config()
        print(f"✅ Configuration loaded for {config.environment} environment")

        if config.thresholds.overrides_path and not config.thresholds.overrides_path.exists():
            print(f"⚠️  Threshold overrides file not found: {config.thresholds.overrides_path}")

    except Exception as e:
        print(f"❌ Configuration validation failed: {e}")
        raise


def print_config_summary() -> None:
    """Print configuration summary for debugging."""
    config = get_config()

    print("\n🔧 CONFIGURATION SUMMARY")
    print(f"Environment: {config.environment}")
    print(f"Debug Mode: {config.debug}")
    print(f"Log Level: {config.logging.level}")

    print("\n📊 MONITORING CONFIGURATION")
    print(f"Evaluation Interval: {config.monitoring.evaluation_interval_seconds}s")
    print(f"Fetch Timeout: {config.monitoring.fetch_timeout_seconds}s")
    print(f"Top Processes Checked: {config.monitoring.top_process_count}")

    print("\n🗂  HISTORY CONFIGURATION")
    print(f"Path: {config.history.path}")
    print(f"Capacity: {config.history.max_entries} entries")
    print(f"Threshold Overrides: {config.thresholds.overrides_path or 'defaults'}")


if __name__ == "__main__":
    validate_config()
    print_config_summary()
