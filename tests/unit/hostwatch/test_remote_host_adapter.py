"""Tests for telemetry sources backed by the remote command client."""

from typing import Any

import pytest

from hostwatch.adapters.remote_host.commands import (
    COMMANDS,
    CommandTelemetrySource,
    RemoteCommandError,
    command_sources,
)
from hostwatch.domain.models import SecurityProbeCounts, TelemetryFamily
from hostwatch.services.probe_parser import SECURITY_PROBE_COMMAND
from hostwatch.services.telemetry_collector import TelemetryCollector


class FakeCommandClient:
    """Answers each command from a canned response table."""

    def __init__(self, responses: dict[str, Any]) -> None:
        self.responses = responses
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def invoke(self, name: str, params: dict[str, Any]) -> dict[str, Any]:
        self.calls.append((name, params))
        response = self.responses[name]
        if isinstance(response, Exception):
            raise response
        return response


HEALTHY_RESPONSES: dict[str, Any] = {
    "get_system_stats": {
        "success": True,
        "stats": {
            "cpu_percent": 12.5,
            "cpu_details": {"iowait_percent": 0.5, "cores": 4, "load_average_1m": 0.4},
            "memory": {"total": 8000, "used": 7800, "free": 200, "available": 300},
            "swap": {"total": 0, "used": 0, "free": 0, "available": 0},
            "uptime": "3 days",
        },
    },
    "get_network_socket_stats": {"success": True, "stats": {"tcp_synrecv": 2, "tcp_total": 40}},
    "get_processes": {
        "success": True,
        "processes": [{"pid": 1, "user": "root", "cpu": "0.3", "mem": "1.1", "command": "init"}],
    },
    "get_disk_usage": {
        "success": True,
        "disks": [{"path": "/", "filesystem": "/dev/sda1", "usage": 91, "inodes_usage": 12}],
    },
    "ssh_execute_command": {"success": True, "output": "---SSH_FAILURES---\n0\n---ZOMBIE---\n0\n"},
}


async def test_fetch_passes_session_and_params() -> None:
    client = FakeCommandClient(HEALTHY_RESPONSES)
    source = CommandTelemetrySource(client, TelemetryFamily.PROCESSES)

    result = await source.fetch("s1")

    assert result.is_ok()
    assert client.calls == [("get_processes", {"sessionId": "s1", "sortBy": "cpu"})]


async def test_security_probe_is_parsed() -> None:
    client = FakeCommandClient(HEALTHY_RESPONSES)
    source = CommandTelemetrySource(client, TelemetryFamily.SECURITY_PROBE)

    result = await source.fetch("s1")

    assert result.unwrap() == SecurityProbeCounts(ssh_failures=0, zombies=0)
    assert client.calls[0][1]["command"] == SECURITY_PROBE_COMMAND


async def test_empty_probe_output_gives_empty_counts() -> None:
    client = FakeCommandClient({"ssh_execute_command": {"success": True, "output": ""}})
    source = CommandTelemetrySource(client, TelemetryFamily.SECURITY_PROBE)

    assert (await source.fetch("s1")).unwrap() == SecurityProbeCounts()


@pytest.mark.parametrize(
    "response",
    [
        {"success": False, "error": "session not found"},
        {"success": True},
        ConnectionError("channel closed"),
    ],
)
async def test_failures_become_error_results(response: Any) -> None:
    client = FakeCommandClient({"get_system_stats": response})
    source = CommandTelemetrySource(client, TelemetryFamily.STATS)

    result = await source.fetch("s1")

    assert result.is_err()
    assert isinstance(result.unwrap_err(), RemoteCommandError | ConnectionError)


def test_every_family_has_a_command() -> None:
    assert set(COMMANDS) == set(TelemetryFamily)
    assert [s.family for s in command_sources(FakeCommandClient({}))] == list(TelemetryFamily)


async def test_collector_builds_full_snapshot_from_remote_commands() -> None:
    collector = TelemetryCollector()
    for source in command_sources(FakeCommandClient(HEALTHY_RESPONSES)):
        collector.add_source(source)

    snapshot = await collector.collect_snapshot("s1")

    assert snapshot.present_families() == list(TelemetryFamily)
    assert snapshot.stats is not None and snapshot.stats.memory is not None
    assert snapshot.stats.memory.used_percent == pytest.approx(97.5)
    assert snapshot.processes is not None and snapshot.processes[0].pid == "1"
    assert snapshot.disks is not None and snapshot.disks[0].usage == 91


async def test_partial_remote_failure_keeps_other_families() -> None:
    responses = dict(HEALTHY_RESPONSES)
    responses["get_disk_usage"] = {"success": False, "error": "df failed"}
    collector = TelemetryCollector()
    for source in command_sources(FakeCommandClient(responses)):
        collector.add_source(source)

    snapshot = await collector.collect_snapshot("s1")

    assert snapshot.disks is None
    assert snapshot.stats is not None
