"""
End-to-end demo of the alerting pipeline against simulated hosts.

This script exercises:
1. Configuration loading and validation
2. Telemetry collection through the remote command adapter
3. Threshold evaluation and severity ordering
4. Deduplication across cycles and history persistence
5. Partial telemetry failure

Run with: uv run python demo_system.py
"""

import asyncio
import tempfile
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from hostwatch.adapters.remote_host.commands import command_sources
from hostwatch.config import (
    AppConfig,
    HistoryConfig,
    get_config,
    print_config_summary,
    validate_config,
)
from hostwatch.logging_setup import configure_logging
from hostwatch.services.alert_monitor import AlertMonitor
from hostwatch.services.alert_query import AlertQueryService, format_relative_time, format_time
from hostwatch.services.telemetry_collector import TelemetryCollector

console = Console()

SEVERITY_STYLES = {"critical": "red", "warning": "yellow", "info": "blue"}


class SimulatedHost:
    """Command client answering like a remote host in a given scenario."""

    def __init__(self, scenario: str = "normal") -> None:
        self.scenario = scenario

    async def invoke(self, name: str, params: dict[str, Any]) -> dict[str, Any]:
        await asyncio.sleep(0.05)  # Simulate round trip

        if self.scenario == "disk_offline" and name == "get_disk_usage":
            return {"success": False, "error": "df: command timed out"}

        stressed = self.scenario in {"under_attack", "disk_offline"}

        if name == "get_system_stats":
            used = 7800 if stressed else 4000
            return {
                "success": True,
                "stats": {
                    "cpu_percent": 91.0 if stressed else 35.0,
                    "cpu_details": {"iowait_percent": 1.2, "cores": 4, "load_average_1m": 3.6},
                    "memory": {"total": 8000, "used": used, "free": 8000 - used, "available": 0},
                    "swap": {"total": 2048, "used": 0, "free": 2048, "available": 2048},
                    "uptime": "12 days",
                },
            }
        if name == "get_network_socket_stats":
            return {
                "success": True,
                "stats": {"tcp_synrecv": 42 if stressed else 0, "tcp_established": 120},
            }
        if name == "get_processes":
            return {
                "success": True,
                "processes": [
                    {
                        "pid": 2231,
                        "user": "www",
                        "cpu": "88.0" if stressed else "4.0",
                        "mem": "12.0",
                        "command": "php-fpm: pool www",
                    },
                    {"pid": 1, "user": "root", "cpu": "0.1", "mem": "0.2", "command": "/sbin/init"},
                ],
            }
        if name == "get_disk_usage":
            disk = {"path": "/", "filesystem": "/dev/vda1", "usage": 87, "inodes_usage": 20}
            return {"success": True, "disks": [disk]}
        if name == "ssh_execute_command":
            failures = 27 if stressed else 0
            output = f"---SSH_FAILURES---\n{failures}\n---ZOMBIE---\n0\n---OOM_KILLS---\n0\n"
            return {"success": True, "output": output}
        return {"success": False, "error": f"unknown command {name}"}


def build_monitor(history_path: Path, scenario: str) -> AlertMonitor:
    collector = TelemetryCollector()
    for source in command_sources(SimulatedHost(scenario)):
        collector.add_source(source)
    config = AppConfig(history=HistoryConfig(path=history_path))
    return AlertMonitor.from_config(config, collector=collector)


async def check_configuration() -> bool:
    """Check configuration loading and validation."""

    console.print(Panel("🔧 Checking Configuration", style="blue"))

    try:
        validate_config()
        configure_logging(get_config().logging)
        print_config_summary()
        return True

    except Exception as e:
        console.print(f"❌ Configuration check failed: {e}", style="red")
        return False


async def check_evaluation(history_path: Path) -> bool:
    """Run one cycle for a host under attack and show the ranked alerts."""

    console.print(Panel("🚨 Checking Threshold Evaluation", style="blue"))

    try:
        monitor = build_monitor(history_path, "under_attack")
        result = await monitor.run_cycle("web-01")
        if result is None or result.failed:
            console.print("❌ Evaluation cycle failed", style="red")
            return False

        table = Table(title="Current Alerts (web-01)")
        table.add_column("Severity", style="white")
        table.add_column("Category", style="cyan")
        table.add_column("Title", style="white")
        table.add_column("Value", style="green")
        table.add_column("Threshold", style="yellow")

        for alert in result.alerts:
            table.add_row(
                f"[{SEVERITY_STYLES[alert.severity.value]}]{alert.severity.value.upper()}[/]",
                alert.category.value,
                alert.title,
                alert.value or "",
                alert.threshold or "",
            )

        console.print(table)
        console.print(
            f"✅ {len(result.alerts)} alerts, {len(result.persisted)} persisted", style="green"
        )
        return bool(result.alerts)

    except Exception as e:
        console.print(f"❌ Evaluation check failed: {e}", style="red")
        return False


async def check_deduplication(history_path: Path) -> bool:
    """A second identical cycle must not add history entries."""

    console.print(Panel("🔁 Checking Deduplication", style="blue"))

    try:
        monitor = build_monitor(history_path, "under_attack")
        first = await monitor.run_cycle("web-02")
        second = await monitor.run_cycle("web-02")

        if first is None or second is None:
            return False

        console.print(f"First cycle persisted:  {len(first.persisted)}")
        console.print(f"Second cycle persisted: {len(second.persisted)}")

        if second.persisted:
            console.print("❌ Repeated alerts were persisted again", style="red")
            return False

        console.print("✅ Repeated alerts suppressed", style="green")
        return True

    except Exception as e:
        console.print(f"❌ Deduplication check failed: {e}", style="red")
        return False


async def check_partial_failure(history_path: Path) -> bool:
    """Disk telemetry fails; every other family must still be evaluated."""

    console.print(Panel("🛡️ Checking Partial Failure", style="blue"))

    try:
        monitor = build_monitor(history_path, "disk_offline")
        result = await monitor.run_cycle("db-01")
        if result is None or result.snapshot is None:
            return False

        families = [f.value for f in result.snapshot.present_families()]
        console.print(f"Families collected: {', '.join(families)}")

        if "disks" in families or not result.alerts:
            console.print("❌ Partial failure not handled", style="red")
            return False

        console.print("✅ Missing disk telemetry skipped, other checks ran", style="green")
        return True

    except Exception as e:
        console.print(f"❌ Partial failure check failed: {e}", style="red")
        return False


async def check_history(history_path: Path) -> bool:
    """Show the persisted history grouped by day."""

    console.print(Panel("🗂  Checking Alert History", style="blue"))

    try:
        monitor = build_monitor(history_path, "normal")
        query = AlertQueryService(monitor.history, monitor)
        view = query.history(window="today")

        for group in view.groups:
            table = Table(title=group.label)
            table.add_column("Time", style="cyan")
            table.add_column("Session", style="magenta")
            table.add_column("Alert", style="white")
            table.add_column("Value", style="green")
            table.add_column("When", style="yellow")
            for entry in group.alerts[:10]:
                table.add_row(
                    format_time(entry.timestamp),
                    entry.session_id,
                    entry.title,
                    entry.value or "",
                    format_relative_time(entry.timestamp),
                )
            console.print(table)

        counts = query.history_counts()
        console.print(f"Counts: {counts}")
        return view.total > 0

    except Exception as e:
        console.print(f"❌ History check failed: {e}", style="red")
        return False


async def run_all_checks() -> None:
    """Run all system checks against a throwaway history file."""

    console.print(Panel("🧪 Hostwatch - System Checks", style="bold blue"))

    with tempfile.TemporaryDirectory() as tmp:
        history_path = Path(tmp) / "alert_history.json"

        checks = [
            ("Configuration", check_configuration, ()),
            ("Threshold Evaluation", check_evaluation, (history_path,)),
            ("Deduplication", check_deduplication, (history_path,)),
            ("Partial Failure", check_partial_failure, (history_path,)),
            ("Alert History", check_history, (history_path,)),
        ]

        results = []
        for check_name, check, args in checks:
            console.print(f"\n{'=' * 60}")
            results.append((check_name, await check(*args)))

    console.print(f"\n{'=' * 60}")
    console.print(Panel("📋 Check Results Summary", style="bold"))

    summary_table = Table()
    summary_table.add_column("Check", style="cyan")
    summary_table.add_column("Result", style="white")

    passed = 0
    for check_name, result in results:
        if result:
            summary_table.add_row(check_name, "✅ PASSED")
            passed += 1
        else:
            summary_table.add_row(check_name, "❌ FAILED")

    console.print(summary_table)
    console.print(f"\n🎯 Results: {passed}/{len(results)} checks passed")


if __name__ == "__main__":
    try:
        asyncio.run(run_all_checks())
    except KeyboardInterrupt:
        console.print("\n👋 Checks stopped by user", style="yellow")
