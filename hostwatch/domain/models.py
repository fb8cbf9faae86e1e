"""
Domain models for remote host alerting.

These models represent the core business concepts and are framework-agnostic.
Telemetry families are optional on purpose: an absent family means "not
collected this cycle" and is never the same thing as a zero reading.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Literal
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidatorFunctionWrapHandler,
    field_validator,
)


class Severity(str, Enum):
    """Alert severity levels, most urgent first."""

    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.CRITICAL: 0, Severity.WARNING: 1, Severity.INFO: 2}


class AlertCategory(str, Enum):
    """Metric families an alert can belong to."""

    MEMORY = "memory"
    CPU = "cpu"
    DISK = "disk"
    NETWORK = "network"
    SECURITY = "security"
    PROCESS = "process"
    SYSTEM = "system"


DateWindow = Literal["all", "today", "week"]
CategoryFilter = AlertCategory | Literal["all"]


class TelemetryFamily(str, Enum):
    """Sub-sources that make up one telemetry snapshot."""

    STATS = "stats"
    SOCKET_STATS = "socket_stats"
    DISKS = "disks"
    PROCESSES = "processes"
    SECURITY_PROBE = "security_probe"


# Telemetry snapshot -------------------------------------------------------


class CpuDetails(BaseModel):
    total_percent: float | None = None
    user_percent: float | None = None
    system_percent: float | None = None
    iowait_percent: float | None = None
    cores: int | None = None
    load_average_1m: float | None = None
    load_average_5m: float | None = None
    load_average_15m: float | None = None


class MemoryUsage(BaseModel):
    """Memory or swap usage, in whatever unit the collector reports."""

    total: float | None = Field(default=None, ge=0)
    used: float | None = Field(default=None, ge=0)
    free: float | None = None
    available: float | None = None

    @property
    def used_percent(self) -> float | None:
        if self.total is None or self.used is None or self.total <= 0:
            return None
        return self.used / self.total * 100


class SystemStats(BaseModel):
    cpu_percent: float | None = None
    cpu_details: CpuDetails | None = None
    memory: MemoryUsage | None = None
    swap: MemoryUsage | None = None
    uptime: str | None = None

    @field_validator("cpu_details", "memory", "swap", mode="wrap")
    @classmethod
    def drop_malformed_reading(cls, v: object, handler: ValidatorFunctionWrapHandler) -> object:
        # a bad sub-reading is unknown; the rest of the stats still count
        try:
            return handler(v)
        except ValidationError:
            return None


class SocketStats(BaseModel):
    total: int | None = None
    tcp_total: int | None = None
    tcp_established: int | None = None
    tcp_timewait: int | None = None
    tcp_synrecv: int | None = None
    udp_total: int | None = None
    conntrack_current: int | None = None
    conntrack_max: int | None = None
    conntrack_percent: float | None = None


class DiskUsage(BaseModel):
    path: str
    filesystem: str = ""
    total: str | None = None
    available: str | None = None
    usage: float | None = None
    inodes_total: str | None = None
    inodes_usage: float | None = None


class ProcessInfo(BaseModel):
    """One row of the remote process table (``ps`` style, strings allowed)."""

    pid: str
    user: str = ""
    cpu: float | None = None
    mem: float | None = None
    command: str = ""

    @field_validator("pid", mode="before")
    @classmethod
    def pid_as_text(cls, v: object) -> str:
        return str(v)

    @field_validator("cpu", "mem", mode="before")
    @classmethod
    def parse_percent(cls, v: object) -> float | None:
        # ps prints "12.3"; anything unparseable is treated as unknown
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, int | float):
            return float(v)
        try:
            return float(str(v).strip().rstrip("%"))
        except ValueError:
            return None


class SecurityProbeCounts(BaseModel):
    """Counters extracted from the security probe output. None = section absent."""

    ssh_failures: int | None = None
    zombies: int | None = None
    oom_kills: int | None = None


class TelemetrySnapshot(BaseModel):
    """One telemetry sample for one monitored session."""

    session_id: str = ""
    collected_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    stats: SystemStats | None = None
    socket_stats: SocketStats | None = None
    disks: list[DiskUsage] | None = None
    processes: list[ProcessInfo] | None = None
    security_probe: SecurityProbeCounts | None = None

    @field_validator("disks", "processes", mode="wrap")
    @classmethod
    def drop_malformed_rows(cls, v: object, handler: ValidatorFunctionWrapHandler) -> object:
        """Validate table rows one by one; a malformed row is dropped, not the table."""
        if not isinstance(v, list):
            return handler(v)
        rows: list[object] = []
        for row in v:
            try:
                rows.extend(handler([row]))
            except ValidationError:
                continue
        return rows

    def present_families(self) -> list[TelemetryFamily]:
        return [family for family in TelemetryFamily if getattr(self, family.value) is not None]


# Alerts ---------------------------------------------------------------------


class Alert(BaseModel):
    """A transient, rule-triggered classification produced by one evaluation."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Rule key, e.g. memory-critical or disk-warning-/var")
    severity: Severity
    category: AlertCategory
    title: str
    description: str
    value: str | None = None
    threshold: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class HistoryAlert(BaseModel):
    """A persisted occurrence of an Alert.

    JSON field names (``id``, ``alertId``, ``sessionId``) match the on-disk
    history layout.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    history_id: str = Field(alias="id")
    alert_id: str = Field(alias="alertId")
    severity: Severity
    category: AlertCategory
    title: str
    description: str
    value: str | None = None
    threshold: str | None = None
    timestamp: datetime
    session_id: str = Field(alias="sessionId")

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        return v if v.tzinfo is not None else v.replace(tzinfo=UTC)

    @classmethod
    def from_alert(cls, alert: Alert, session_id: str) -> "HistoryAlert":
        epoch_ms = int(alert.timestamp.timestamp() * 1000)
        return cls(
            history_id=f"{alert.id}-{epoch_ms}-{uuid4().hex[:8]}",
            alert_id=alert.id,
            severity=alert.severity,
            category=alert.category,
            title=alert.title,
            description=alert.description,
            value=alert.value,
            threshold=alert.threshold,
            timestamp=alert.timestamp,
            session_id=session_id,
        )

    def to_record(self) -> dict[str, object]:
        return self.model_dump(mode="json", by_alias=True)
