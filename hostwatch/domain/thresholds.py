"""
Two-tier threshold table used by the evaluator.

Defaults mirror the values operators have tuned against real hosts. A JSON
file can override individual bands; each stored band replaces the default
band wholesale, keys may be snake_case or camelCase.
"""

import json
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

logger = structlog.get_logger(__name__)


class ThresholdBand(BaseModel):
    """Warning and critical bounds for one check. Both are inclusive."""

    model_config = ConfigDict(frozen=True)

    warning: float = Field(ge=0.0)
    critical: float = Field(ge=0.0)
    window: str | None = Field(default=None, description="Lookback window label, if any")

    @model_validator(mode="after")
    def critical_not_below_warning(self) -> "ThresholdBand":
        if self.critical < self.warning:
            raise ValueError(
                f"critical bound {self.critical} must not be below warning bound {self.warning}"
            )
        return self


def _band(warning: float, critical: float, window: str | None = None) -> ThresholdBand:
    return ThresholdBand(warning=warning, critical=critical, window=window)


class ThresholdTable(BaseModel):
    """Threshold table for every evaluated check."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    memory: ThresholdBand = _band(80, 95)
    swap: ThresholdBand = _band(1, 20)
    cpu: ThresholdBand = _band(85, 95)
    load_average: ThresholdBand = _band(0.8, 1.5)  # multiplier of CPU cores
    disk: ThresholdBand = _band(85, 95)
    inodes: ThresholdBand = _band(80, 95)
    syn_recv: ThresholdBand = _band(5, 20)  # possible SYN flood
    time_wait: ThresholdBand = _band(10000, 30000)
    established: ThresholdBand = _band(2000, 5000)
    process_memory: ThresholdBand = _band(40, 60)
    process_cpu: ThresholdBand = _band(80, 95)
    iowait: ThresholdBand = _band(5, 15)
    ssh_failed_logins: ThresholdBand = _band(5, 20, window="1m")
    zombie_processes: ThresholdBand = _band(3, 10)
    open_files: ThresholdBand = _band(80, 95)


DEFAULT_THRESHOLDS = ThresholdTable()


def _field_name(key: str) -> str | None:
    for name, info in ThresholdTable.model_fields.items():
        if key in (name, info.alias):
            return name
    return None


def merge_thresholds(overrides: dict[str, object], base: ThresholdTable | None = None) -> ThresholdTable:
    """Replace bands of ``base`` with the ones in ``overrides``. Unknown keys are ignored."""
    merged = (base or DEFAULT_THRESHOLDS).model_dump()
    for key, band in overrides.items():
        name = _field_name(key)
        if name is None:
            logger.debug("unknown_threshold_key_ignored", key=key)
            continue
        merged[name] = band
    return ThresholdTable.model_validate(merged)


def load_thresholds(path: Path | str | None) -> ThresholdTable:
    """Load thresholds from ``path`` merged over the defaults.

    A missing, unreadable or invalid file yields the defaults.
    """
    if path is None:
        return DEFAULT_THRESHOLDS

    path = Path(path).expanduser()
    if not path.exists():
        return DEFAULT_THRESHOLDS

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("threshold file must contain a JSON object")
        table = merge_thresholds(data)
    except (OSError, ValueError, ValidationError) as e:
        logger.error("thresholds_load_failed", path=str(path), error=str(e))
        return DEFAULT_THRESHOLDS

    logger.info("thresholds_loaded", path=str(path), overrides=len(data))
    return table


def save_thresholds(table: ThresholdTable, path: Path | str) -> bool:
    """Persist ``table`` as camelCase JSON. Returns False when the write failed."""
    path = Path(path).expanduser()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(table.model_dump(by_alias=True, exclude_none=True), indent=2),
            encoding="utf-8",
        )
    except OSError as e:
        logger.error("thresholds_save_failed", path=str(path), error=str(e))
        return False
    return True
