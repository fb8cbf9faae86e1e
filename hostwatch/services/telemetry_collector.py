"""
Concurrent telemetry collection for one monitored session.

Key patterns:
- Protocol-based telemetry sources (one per snapshot family)
- Generic Result type for expected failures
- Structured concurrency with asyncio.TaskGroup, each fetch bounded by a timeout
- Error boundaries per source: one failing family never aborts the others
"""

import asyncio
import time
from typing import Any, Generic, Protocol, TypeVar

import structlog
from pydantic import BaseModel, Field, ValidationError

from hostwatch.domain.models import TelemetryFamily, TelemetrySnapshot

logger = structlog.get_logger(__name__)

# Generic Result type for explicit error handling
ValueT = TypeVar("ValueT")
ErrorT = TypeVar("ErrorT", bound=BaseException)


class Result(Generic[ValueT, ErrorT]):
    """
    Explicit error handling without exceptions for expected failures.

    Why: Makes error paths visible in type system, forces handling decisions.
    When to use: When failure is expected business logic, not exceptional.
    """

    def __init__(self, value: ValueT | None = None, error: ErrorT | None = None) -> None:
        if value is not None and error is not None:
            raise ValueError("Result cannot have both value and error")
        if value is None and error is None:
            raise ValueError("Result must have either value or error")
        self._value: ValueT | None = value
        self._error: ErrorT | None = error

    @classmethod
    def ok(cls, value: ValueT) -> "Result[ValueT, ErrorT]":
        return cls(value=value)

    @classmethod
    def err(cls, error: ErrorT) -> "Result[ValueT, ErrorT]":
        return cls(error=error)

    def is_ok(self) -> bool:
        return self._error is None

    def is_err(self) -> bool:
        return self._error is not None

    def unwrap(self) -> ValueT:
        if self._error:
            raise self._error
        return self._value  # type: ignore

    def unwrap_or(self, default: ValueT) -> ValueT:
        return self._value if self._error is None else default  # type: ignore

    def unwrap_err(self) -> ErrorT:
        if self._error is None:
            raise ValueError("Called unwrap_err() on an Ok value")
        return self._error


class TelemetrySource(Protocol):
    """
    Protocol for one telemetry sub-source of a snapshot.

    ``fetch`` returns the payload for ``family`` (a model instance or the raw
    mapping it validates from) or an error Result.
    """

    family: TelemetryFamily

    async def fetch(self, session_id: str) -> Result[Any, Exception]: ...


class TelemetryCollectorConfig(BaseModel):
    """Collection limits with validation and smart defaults."""

    timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Timeout for an individual sub-source fetch in seconds.",
    )
    max_concurrent_fetches: int = Field(
        default=10,
        gt=0,
        description="Max number of sub-source fetches in flight across all sessions.",
    )


class TelemetryCollector:
    """
    Fans out to every registered source and assembles a TelemetrySnapshot.

    Design principles:
    - Graceful degradation (a failed or slow source only drops its family)
    - Observable (structured logging per source and per collection)
    - Resource-aware (timeouts, global cap on in-flight fetches)
    """

    def __init__(self, config: TelemetryCollectorConfig | None = None) -> None:
        self.config = config or TelemetryCollectorConfig()
        self.sources: list[TelemetrySource] = []
        self.logger = logger.bind(component="telemetry_collector")
        self._fetch_slots = asyncio.Semaphore(self.config.max_concurrent_fetches)

    def add_source(self, source: TelemetrySource) -> None:
        """Add a telemetry source. Validates source implements protocol correctly."""
        if not hasattr(source, "fetch") or not hasattr(source, "family"):
            raise TypeError(f"Source {source} must implement TelemetrySource protocol")
        self.sources.append(source)
        self.logger.info("source_added", family=source.family.value)

    def remove_source(self, source: TelemetrySource) -> None:
        self.sources.remove(source)
        self.logger.info("source_removed", family=source.family.value)

    async def _fetch(self, source: TelemetrySource, session_id: str) -> Result[Any, Exception]:
        """Run one fetch inside its own error boundary."""
        family = source.family.value
        try:
            async with self._fetch_slots:
                return await asyncio.wait_for(
                    source.fetch(session_id), timeout=self.config.timeout_seconds
                )
        except TimeoutError as e:
            self.logger.warning("source_fetch_timeout", session_id=session_id, family=family)
            return Result.err(e)
        except Exception as e:
            self.logger.exception(
                "unexpected_source_fetch_error", session_id=session_id, family=family, error=str(e)
            )
            return Result.err(e)

    async def collect_snapshot(self, session_id: str) -> TelemetrySnapshot:
        """
        Fetch all sources concurrently and build a snapshot from the ones that succeeded.

        Failed families are left as None on the snapshot so their checks are skipped.
        """
        start_time = time.perf_counter()

        async with asyncio.TaskGroup() as task_group:
            tasks = [
                (
                    source,
                    task_group.create_task(
                        self._fetch(source, session_id),
                        name=f"{session_id}:{source.family.value}",
                    ),
                )
                for source in self.sources
            ]

        families: dict[str, Any] = {}
        for source, task in tasks:
            family = source.family.value
            result = task.result()
            if result.is_err():
                self.logger.warning(
                    "source_fetch_failed",
                    session_id=session_id,
                    family=family,
                    error=str(result.unwrap_err()),
                )
                continue

            # Validate each family on its own so one malformed payload only drops itself
            payload = result.unwrap()
            try:
                partial = TelemetrySnapshot.model_validate({family: payload})
            except ValidationError as e:
                self.logger.warning(
                    "source_payload_invalid",
                    session_id=session_id,
                    family=family,
                    errors=e.error_count(),
                )
                continue
            families[family] = getattr(partial, family)

            if isinstance(payload, list) and len(families[family]) < len(payload):
                self.logger.warning(
                    "source_rows_dropped",
                    session_id=session_id,
                    family=family,
                    dropped=len(payload) - len(families[family]),
                )

        snapshot = TelemetrySnapshot(session_id=session_id, **families)

        self.logger.info(
            "telemetry_collection_completed",
            session_id=session_id,
            families=[f.value for f in snapshot.present_families()],
            successful_sources=len(families),
            total_sources=len(self.sources),
            duration_seconds=round(time.perf_counter() - start_time, 3),
        )
        return snapshot
