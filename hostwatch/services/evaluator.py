"""
Threshold evaluation: telemetry snapshot -> ranked alerts.

Every check is two-tier: the critical bound is tested first, then the warning
bound, so a check yields at most one alert per entity per evaluation. Bounds
are inclusive. Families missing from the snapshot are skipped entirely; a
missing reading is never evaluated as zero.

The evaluator holds no state between calls.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime

from hostwatch.domain.models import (
    Alert,
    AlertCategory,
    CpuDetails,
    DiskUsage,
    ProcessInfo,
    SecurityProbeCounts,
    Severity,
    SocketStats,
    SystemStats,
    TelemetrySnapshot,
)
from hostwatch.domain.thresholds import DEFAULT_THRESHOLDS, ThresholdBand, ThresholdTable

DEFAULT_TOP_PROCESS_COUNT = 5


@dataclass(frozen=True)
class RuleText:
    """Operator-facing wording for one severity of a rule."""

    title: str
    description: str


def format_number(value: float) -> str:
    """Render a number the way the collector reported it (95 stays 95, 95.5 stays 95.5)."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_percent(value: float) -> str:
    return f"{value:.1f}%"


def format_whole_percent(value: float) -> str:
    return f"{format_number(value)}%"


def classify(value: float, band: ThresholdBand) -> Severity | None:
    """Critical first, then warning; None when neither bound is reached."""
    if value >= band.critical:
        return Severity.CRITICAL
    if value >= band.warning:
        return Severity.WARNING
    return None


def sort_by_severity(alerts: Iterable[Alert]) -> list[Alert]:
    """Stable sort, critical first."""
    return sorted(alerts, key=lambda alert: alert.severity.rank)


class ThresholdEvaluator:
    """
    Maps a telemetry snapshot onto alerts using a fixed threshold table.

    Checks, in evaluation order: memory, swap, cpu, iowait, load average,
    SYN_RECV / TIME_WAIT / ESTABLISHED sockets, per-disk usage and inodes,
    top processes by cpu and memory, then the security probe counters.
    """

    def __init__(
        self,
        thresholds: ThresholdTable | None = None,
        top_process_count: int = DEFAULT_TOP_PROCESS_COUNT,
    ) -> None:
        self.thresholds = thresholds or DEFAULT_THRESHOLDS
        self.top_process_count = top_process_count

    def evaluate(self, snapshot: TelemetrySnapshot, now: datetime | None = None) -> list[Alert]:
        now = now or datetime.now(UTC)
        alerts: list[Alert] = []

        if snapshot.stats is not None:
            alerts.extend(self._check_stats(snapshot.stats, now))
        if snapshot.socket_stats is not None:
            alerts.extend(self._check_sockets(snapshot.socket_stats, now))
        if snapshot.disks is not None:
            alerts.extend(self._check_disks(snapshot.disks, now))
        if snapshot.processes is not None:
            alerts.extend(self._check_processes(snapshot.processes, now))
        if snapshot.security_probe is not None:
            alerts.extend(self._check_security_probe(snapshot.security_probe, now))

        return sort_by_severity(alerts)

    # ── shared rule builder ─────────────────────
    @staticmethod
    def _two_tier(
        *,
        rule: str,
        value: float,
        band: ThresholdBand,
        category: AlertCategory,
        texts: dict[Severity, RuleText],
        display: Callable[[float], str],
        bound_display: Callable[[float], str],
        now: datetime,
        entity: str | None = None,
    ) -> list[Alert]:
        severity = classify(value, band)
        if severity is None:
            return []

        bound = band.critical if severity is Severity.CRITICAL else band.warning
        alert_id = f"{rule}-{severity.value}"
        if entity is not None:
            alert_id = f"{alert_id}-{entity}"

        text = texts[severity]
        return [
            Alert(
                id=alert_id,
                severity=severity,
                category=category,
                title=text.title,
                description=text.description,
                value=display(value),
                threshold=f">{bound_display(bound)}",
                timestamp=now,
            )
        ]

    # ── host stats ─────────────────────────────
    def _check_stats(self, stats: SystemStats, now: datetime) -> list[Alert]:
        alerts: list[Alert] = []

        memory_percent = stats.memory.used_percent if stats.memory else None
        if memory_percent is not None:
            alerts += self._two_tier(
                rule="memory",
                value=memory_percent,
                band=self.thresholds.memory,
                category=AlertCategory.MEMORY,
                texts={
                    Severity.CRITICAL: RuleText(
                        "RAM running low",
                        "RAM usage is at a dangerous level. System may slow down or crash.",
                    ),
                    Severity.WARNING: RuleText(
                        "High RAM usage",
                        "High RAM usage detected. Consider monitoring or freeing up memory.",
                    ),
                },
                display=format_percent,
                bound_display=format_whole_percent,
                now=now,
            )

        swap_percent = stats.swap.used_percent if stats.swap else None
        if swap_percent is not None:
            alerts += self._two_tier(
                rule="swap",
                value=swap_percent,
                band=self.thresholds.swap,
                category=AlertCategory.MEMORY,
                texts={
                    Severity.CRITICAL: RuleText(
                        "Swap usage too high",
                        "High swap usage. System performance may degrade due to disk I/O.",
                    ),
                    Severity.WARNING: RuleText(
                        "Swap currently in use",
                        "System is using swap, potentially due to low physical memory.",
                    ),
                },
                display=format_percent,
                bound_display=format_whole_percent,
                now=now,
            )

        if stats.cpu_percent is not None:
            alerts += self._two_tier(
                rule="cpu",
                value=stats.cpu_percent,
                band=self.thresholds.cpu,
                category=AlertCategory.CPU,
                texts={
                    Severity.CRITICAL: RuleText(
                        "CPU overloaded",
                        "CPU usage is extremely high. Check for CPU-intensive processes.",
                    ),
                    Severity.WARNING: RuleText(
                        "High CPU usage", "CPU is operating at a high level."
                    ),
                },
                display=format_percent,
                bound_display=format_whole_percent,
                now=now,
            )

        if stats.cpu_details is not None:
            alerts += self._check_cpu_details(stats.cpu_details, now)

        return alerts

    def _check_cpu_details(self, details: CpuDetails, now: datetime) -> list[Alert]:
        alerts: list[Alert] = []

        if details.iowait_percent is not None:
            alerts += self._two_tier(
                rule="iowait",
                value=details.iowait_percent,
                band=self.thresholds.iowait,
                category=AlertCategory.CPU,
                texts={
                    Severity.CRITICAL: RuleText(
                        "Extremely high I/O Wait",
                        "CPU is waiting heavily on I/O. "
                        "Disk might be overloaded or experiencing issues.",
                    ),
                    Severity.WARNING: RuleText(
                        "High I/O Wait", "CPU is waiting on I/O. Check disk activity."
                    ),
                },
                display=format_percent,
                bound_display=format_whole_percent,
                now=now,
            )

        if details.load_average_1m is None:
            return alerts

        # Core count is unknown on some hosts; a single core is the safe assumption
        cores = details.cores or 1
        load_1m = details.load_average_1m
        alerts += self._two_tier(
            rule="load",
            value=load_1m / cores,
            band=self.thresholds.load_average,
            category=AlertCategory.CPU,
            texts={
                Severity.CRITICAL: RuleText(
                    "Very high Load Average",
                    f"Load average ({load_1m:.2f}) far exceeds the number of cores "
                    f"({cores}). System is overloaded.",
                ),
                Severity.WARNING: RuleText(
                    "High Load Average",
                    "Load average is high relative to the number of cores.",
                ),
            },
            display=lambda _ratio: f"{load_1m:.2f}",
            bound_display=lambda multiplier: f"{cores * multiplier:.2f}",
            now=now,
        )
        return alerts

    # ── sockets ────────────────────────────────
    def _check_sockets(self, sockets: SocketStats, now: datetime) -> list[Alert]:
        alerts: list[Alert] = []

        if sockets.tcp_synrecv is not None:
            alerts += self._two_tier(
                rule="synrecv",
                value=sockets.tcp_synrecv,
                band=self.thresholds.syn_recv,
                category=AlertCategory.SECURITY,
                texts={
                    Severity.CRITICAL: RuleText(
                        "Possible SYN Flood Attack",
                        "Extremely high number of SYN_RECV connections. Potential DDoS attack.",
                    ),
                    Severity.WARNING: RuleText(
                        "SYN_RECV Spike", "Abnormal spike in SYN_RECV connections."
                    ),
                },
                display=format_number,
                bound_display=format_number,
                now=now,
            )

        if sockets.tcp_timewait is not None:
            alerts += self._two_tier(
                rule="timewait",
                value=sockets.tcp_timewait,
                band=self.thresholds.time_wait,
                category=AlertCategory.NETWORK,
                texts={
                    Severity.CRITICAL: RuleText(
                        "Too many TIME_WAIT connections",
                        "Too many connections in TIME_WAIT state. "
                        "Risk of ephemeral port exhaustion.",
                    ),
                    Severity.WARNING: RuleText(
                        "High TIME_WAIT connections",
                        "Number of TIME_WAIT connections is increasing.",
                    ),
                },
                display=format_number,
                bound_display=format_number,
                now=now,
            )

        if sockets.tcp_established is not None:
            alerts += self._two_tier(
                rule="established",
                value=sockets.tcp_established,
                band=self.thresholds.established,
                category=AlertCategory.NETWORK,
                texts={
                    Severity.CRITICAL: RuleText(
                        "Too many connections",
                        "Very high number of established TCP connections.",
                    ),
                    Severity.WARNING: RuleText(
                        "Many active connections",
                        "Number of active TCP connections is higher than normal.",
                    ),
                },
                display=format_number,
                bound_display=format_number,
                now=now,
            )

        return alerts

    # ── disks ──────────────────────────────────
    def _check_disks(self, disks: list[DiskUsage], now: datetime) -> list[Alert]:
        alerts: list[Alert] = []

        for disk in disks:
            if disk.usage is not None:
                alerts += self._two_tier(
                    rule="disk",
                    value=disk.usage,
                    band=self.thresholds.disk,
                    category=AlertCategory.DISK,
                    texts={
                        Severity.CRITICAL: RuleText(
                            f"Disk {disk.path} almost full",
                            f"Partition {disk.path} is running out of space.",
                        ),
                        Severity.WARNING: RuleText(
                            f"High usage on disk {disk.path}",
                            f"Partition {disk.path} has high disk usage.",
                        ),
                    },
                    display=format_whole_percent,
                    bound_display=format_whole_percent,
                    now=now,
                    entity=disk.path,
                )

            if disk.inodes_usage is None:
                continue
            alerts += self._two_tier(
                rule="inodes",
                value=disk.inodes_usage,
                band=self.thresholds.inodes,
                category=AlertCategory.DISK,
                texts={
                    Severity.CRITICAL: RuleText(
                        f"Inodes {disk.path} running low",
                        f"Inodes on {disk.path} are nearly exhausted.",
                    ),
                    Severity.WARNING: RuleText(
                        f"High Inode usage on {disk.path}",
                        "High number of inodes are in use.",
                    ),
                },
                display=format_whole_percent,
                bound_display=format_whole_percent,
                now=now,
                entity=disk.path,
            )

        return alerts

    # ── processes ──────────────────────────────
    def _check_processes(self, processes: list[ProcessInfo], now: datetime) -> list[Alert]:
        """Only the first ``top_process_count`` rows are examined (the list arrives ranked)."""
        alerts: list[Alert] = []

        for proc in processes[: self.top_process_count]:
            short = f"{proc.command[:20]}..."

            if proc.cpu is not None:
                usage = f'Process "{proc.command}" (PID {proc.pid}) is using {proc.cpu:.1f}% CPU.'
                alerts += self._two_tier(
                    rule="proc-cpu",
                    value=proc.cpu,
                    band=self.thresholds.process_cpu,
                    category=AlertCategory.PROCESS,
                    texts={
                        Severity.CRITICAL: RuleText(f"CPU intensive process: {short}", usage),
                        Severity.WARNING: RuleText(f"High CPU usage process: {short}", usage),
                    },
                    display=format_percent,
                    bound_display=format_whole_percent,
                    now=now,
                    entity=proc.pid,
                )

            if proc.mem is not None:
                usage = f'Process "{proc.command}" (PID {proc.pid}) is using {proc.mem:.1f}% RAM.'
                alerts += self._two_tier(
                    rule="proc-mem",
                    value=proc.mem,
                    band=self.thresholds.process_memory,
                    category=AlertCategory.PROCESS,
                    texts={
                        Severity.CRITICAL: RuleText(f"RAM intensive process: {short}", usage),
                        Severity.WARNING: RuleText(f"High RAM usage process: {short}", usage),
                    },
                    display=format_percent,
                    bound_display=format_whole_percent,
                    now=now,
                    entity=proc.pid,
                )

        return alerts

    # ── security probe ─────────────────────────
    def _check_security_probe(self, probe: SecurityProbeCounts, now: datetime) -> list[Alert]:
        alerts: list[Alert] = []

        if probe.ssh_failures is not None:
            alerts += self._two_tier(
                rule="ssh-attack",
                value=probe.ssh_failures,
                band=self.thresholds.ssh_failed_logins,
                category=AlertCategory.SECURITY,
                texts={
                    Severity.CRITICAL: RuleText(
                        "SSH Brute Force Attack",
                        "Multiple failed SSH login attempts detected. "
                        "Potential brute force attack.",
                    ),
                    Severity.WARNING: RuleText(
                        "SSH Login Failures",
                        "Several failed SSH login attempts detected recently.",
                    ),
                },
                display=lambda v: f"{format_number(v)} times",
                bound_display=format_number,
                now=now,
            )

        if probe.zombies is not None:
            alerts += self._two_tier(
                rule="zombie",
                value=probe.zombies,
                band=self.thresholds.zombie_processes,
                category=AlertCategory.PROCESS,
                texts={
                    Severity.CRITICAL: RuleText(
                        "Multiple Zombie Processes",
                        "Multiple zombie processes detected. "
                        "Potential issue with parent processes.",
                    ),
                    Severity.WARNING: RuleText(
                        "Zombie Processes", "Some zombie processes detected in the system."
                    ),
                },
                display=format_number,
                bound_display=format_number,
                now=now,
            )

        # Any OOM kill is critical, no warning tier
        if probe.oom_kills:
            alerts.append(
                Alert(
                    id="oom-kill",
                    severity=Severity.CRITICAL,
                    category=AlertCategory.MEMORY,
                    title="OOM Killer triggered",
                    description=(
                        "Kernel killed processes due to lack of memory. "
                        "Consider increasing RAM or reducing load."
                    ),
                    value=f"{probe.oom_kills} times",
                    threshold=">0",
                    timestamp=now,
                )
            )

        return alerts


def evaluate(
    snapshot: TelemetrySnapshot,
    thresholds: ThresholdTable | None = None,
    now: datetime | None = None,
) -> list[Alert]:
    """Evaluate ``snapshot`` against ``thresholds`` (defaults when omitted)."""
    return ThresholdEvaluator(thresholds).evaluate(snapshot, now=now)
