"""
Remote host adapter: telemetry sources backed by a command client.

The transport (SSH session, command execution, stat parsing) lives outside
this package. It is reached through ``RemoteCommandClient``, whose responses
follow the ``{"success": bool, <payload key>: ..., "error": str}`` envelope:

- get_system_stats          -> "stats"
- get_network_socket_stats  -> "stats"
- get_processes (by cpu)    -> "processes"
- get_disk_usage            -> "disks"
- ssh_execute_command       -> "output" (security probe text)
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog

from hostwatch.domain.models import SecurityProbeCounts, TelemetryFamily
from hostwatch.services.probe_parser import SECURITY_PROBE_COMMAND, parse_security_probe
from hostwatch.services.telemetry_collector import Result

logger = structlog.get_logger(__name__)


class RemoteCommandError(Exception):
    """The remote side answered but reported a failure."""


class RemoteCommandClient(Protocol):
    """Collaborator that executes named commands against a session."""

    async def invoke(self, name: str, params: dict[str, Any]) -> dict[str, Any]: ...


@dataclass(frozen=True)
class CommandSpec:
    name: str
    payload_key: str
    params: dict[str, Any] = field(default_factory=dict)


COMMANDS: dict[TelemetryFamily, CommandSpec] = {
    TelemetryFamily.STATS: CommandSpec("get_system_stats", "stats"),
    TelemetryFamily.SOCKET_STATS: CommandSpec("get_network_socket_stats", "stats"),
    TelemetryFamily.PROCESSES: CommandSpec("get_processes", "processes", {"sortBy": "cpu"}),
    TelemetryFamily.DISKS: CommandSpec("get_disk_usage", "disks"),
    TelemetryFamily.SECURITY_PROBE: CommandSpec(
        "ssh_execute_command", "output", {"command": SECURITY_PROBE_COMMAND}
    ),
}


class CommandTelemetrySource:
    """One snapshot family fetched through the remote command client."""

    def __init__(self, client: RemoteCommandClient, family: TelemetryFamily) -> None:
        self.client = client
        self.family = family
        self.spec = COMMANDS[family]
        self.logger = logger.bind(source=self.spec.name, family=family.value)

    async def fetch(self, session_id: str) -> Result[Any, Exception]:
        try:
            response = await self.client.invoke(
                self.spec.name, {"sessionId": session_id, **self.spec.params}
            )
        except Exception as e:
            self.logger.error("remote_command_failed", session_id=session_id, error=str(e))
            return Result.err(e)

        if not response.get("success"):
            error = response.get("error") or f"{self.spec.name} reported failure"
            return Result.err(RemoteCommandError(error))

        payload = response.get(self.spec.payload_key)
        if payload is None:
            return Result.err(RemoteCommandError(f"{self.spec.name} returned no {self.spec.payload_key}"))

        if self.family is TelemetryFamily.SECURITY_PROBE:
            # Empty probe output: nothing to evaluate, but the probe did run
            payload = parse_security_probe(payload) or SecurityProbeCounts()

        return Result.ok(payload)


def command_sources(
    client: RemoteCommandClient, families: list[TelemetryFamily] | None = None
) -> list[CommandTelemetrySource]:
    """Sources for ``families`` (every family by default)."""
    return [CommandTelemetrySource(client, family) for family in families or list(TelemetryFamily)]
