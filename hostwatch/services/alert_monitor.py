"""
Per-session alert monitoring pipeline.

One evaluation cycle for a session:
1. Collect a telemetry snapshot (concurrent, partial failures tolerated)
2. Evaluate thresholds into severity-sorted alerts
3. Reconcile against the keys emitted last cycle
4. Append the new occurrences to the history store
5. Dispatch new occurrences to handlers

Cycles for the same session never overlap: a trigger that arrives while a
cycle is in flight is skipped. Different sessions run independently.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import BaseModel, Field

from hostwatch.config import AppConfig, MonitoringConfig, get_config
from hostwatch.domain.models import Alert, HistoryAlert, Severity, TelemetrySnapshot
from hostwatch.domain.thresholds import load_thresholds
from hostwatch.services.deduplicator import reconcile
from hostwatch.services.evaluator import ThresholdEvaluator
from hostwatch.services.history_store import HistoryStore
from hostwatch.services.telemetry_collector import TelemetryCollector, TelemetryCollectorConfig

logger = structlog.get_logger(__name__)

AlertHandler = Callable[[HistoryAlert], Any]


@dataclass
class SessionState:
    """Mutable state owned by the monitor for one session."""

    session_id: str
    last_emitted_keys: frozenset[str] = frozenset()
    current_alerts: list[Alert] = field(default_factory=list)
    last_evaluated_at: datetime | None = None
    cycle_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class CycleResult(BaseModel):
    """Outcome of one evaluation cycle."""

    session_id: str
    alerts: list[Alert] = Field(default_factory=list, description="Current alerts, critical first")
    persisted: list[HistoryAlert] = Field(
        default_factory=list, description="Occurrences appended to history this cycle"
    )
    snapshot: TelemetrySnapshot | None = None
    evaluated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    failed: bool = False


class AlertMonitor:
    """
    Orchestrates collection, evaluation, deduplication and history for sessions.

    Dedup state lives in SessionState and is threaded through ``reconcile``
    explicitly on every cycle.
    """

    def __init__(
        self,
        history: HistoryStore,
        collector: TelemetryCollector | None = None,
        evaluator: ThresholdEvaluator | None = None,
        config: MonitoringConfig | None = None,
        handlers: Sequence[AlertHandler] | None = None,
    ) -> None:
        self.config = config or MonitoringConfig()
        self.history = history
        self.collector = collector or TelemetryCollector(
            TelemetryCollectorConfig(
                timeout_seconds=self.config.fetch_timeout_seconds,
                max_concurrent_fetches=self.config.max_concurrent_fetches,
            )
        )
        self.evaluator = evaluator or ThresholdEvaluator(
            top_process_count=self.config.top_process_count
        )
        self.handlers: list[AlertHandler] = list(handlers or [])
        self.logger = logger.bind(component="alert_monitor")

        self._sessions: dict[str, SessionState] = {}
        self._is_running = False

    @classmethod
    def from_config(
        cls,
        config: AppConfig | None = None,
        collector: TelemetryCollector | None = None,
        handlers: Sequence[AlertHandler] | None = None,
    ) -> "AlertMonitor":
        """Build the full pipeline from application configuration."""
        config = config or get_config()
        history = HistoryStore(path=config.history.path, max_entries=config.history.max_entries)
        evaluator = ThresholdEvaluator(
            load_thresholds(config.thresholds.overrides_path),
            top_process_count=config.monitoring.top_process_count,
        )
        return cls(
            history,
            collector=collector,
            evaluator=evaluator,
            config=config.monitoring,
            handlers=handlers,
        )

    # ── sessions ───────────────────────────────
    @property
    def sessions(self) -> list[str]:
        return list(self._sessions)

    def add_session(self, session_id: str) -> SessionState:
        state = self._sessions.get(session_id)
        if state is None:
            state = self._sessions[session_id] = SessionState(session_id)
            self.logger.info("session_added", session_id=session_id)
        return state

    def remove_session(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is not None:
            self.logger.info("session_removed", session_id=session_id)

    def session_state(self, session_id: str) -> SessionState | None:
        return self._sessions.get(session_id)

    def current_alerts(self, session_id: str) -> list[Alert]:
        state = self._sessions.get(session_id)
        return list(state.current_alerts) if state else []

    def is_cycle_running(self, session_id: str) -> bool:
        state = self._sessions.get(session_id)
        return bool(state and state.cycle_lock.locked())

    # ── cycles ─────────────────────────────────
    async def run_cycle(self, session_id: str) -> CycleResult | None:
        """Collect and evaluate one session. None when a cycle is already in flight."""
        return await self._guarded(session_id, snapshot=None)

    async def evaluate_snapshot(self, snapshot: TelemetrySnapshot) -> CycleResult | None:
        """Evaluate an already collected snapshot for ``snapshot.session_id``."""
        if not snapshot.session_id:
            raise ValueError("snapshot.session_id is required")
        return await self._guarded(snapshot.session_id, snapshot=snapshot)

    async def _guarded(
        self, session_id: str, snapshot: TelemetrySnapshot | None
    ) -> CycleResult | None:
        state = self.add_session(session_id)
        if state.cycle_lock.locked():
            self.logger.info("evaluation_cycle_skipped", session_id=session_id, reason="in_flight")
            return None

        async with state.cycle_lock:
            return await self._run_locked(state, snapshot)

    async def _run_locked(
        self, state: SessionState, snapshot: TelemetrySnapshot | None
    ) -> CycleResult:
        cycle_start = time.perf_counter()
        session_log = self.logger.bind(session_id=state.session_id)

        try:
            if snapshot is None:
                snapshot = await self.collector.collect_snapshot(state.session_id)

            now = datetime.now(UTC)
            alerts = self.evaluator.evaluate(snapshot, now=now)
            to_persist, emitted_keys = reconcile(alerts, state.last_emitted_keys)

            persisted: list[HistoryAlert] = []
            if to_persist:
                persisted = await asyncio.to_thread(
                    self.history.append_many, to_persist, state.session_id
                )

            # keys only count as emitted once their occurrences are recorded
            state.last_emitted_keys = emitted_keys
            state.current_alerts = alerts
            state.last_evaluated_at = now

            await self._dispatch(persisted)

        except Exception as e:
            session_log.exception("evaluation_cycle_failed", error=str(e))
            return CycleResult(session_id=state.session_id, snapshot=snapshot, failed=True)

        session_log.info(
            "evaluation_cycle_completed",
            alerts=len(alerts),
            critical=sum(1 for a in alerts if a.severity is Severity.CRITICAL),
            persisted=len(persisted),
            families=[f.value for f in snapshot.present_families()],
            duration_seconds=round(time.perf_counter() - cycle_start, 3),
        )
        return CycleResult(
            session_id=state.session_id,
            alerts=alerts,
            persisted=persisted,
            snapshot=snapshot,
            evaluated_at=now,
        )

    async def _dispatch(self, persisted: list[HistoryAlert]) -> None:
        """Hand new occurrences to handlers (notifications, UI push, ...)."""
        for history_alert in persisted:
            for handler in self.handlers:
                try:
                    outcome = handler(history_alert)
                    if asyncio.iscoroutine(outcome):
                        await outcome
                except Exception as e:
                    self.logger.error(
                        "alert_dispatch_failed", error=str(e), alert_id=history_alert.alert_id
                    )

    async def run_all_sessions(self, session_ids: Sequence[str] | None = None) -> list[CycleResult]:
        """Run one cycle for every session in parallel; skipped sessions are omitted."""
        targets = list(session_ids) if session_ids is not None else self.sessions

        async with asyncio.TaskGroup() as task_group:
            tasks = [
                task_group.create_task(self.run_cycle(session_id), name=f"cycle:{session_id}")
                for session_id in targets
            ]

        return [result for task in tasks if (result := task.result()) is not None]

    async def run_continuously(
        self, session_ids: Sequence[str] | None = None
    ) -> AsyncIterator[list[CycleResult]]:
        """
        Periodic evaluation of the given sessions (all registered ones by default).

        Yields each tick's results; stops when ``stop()`` is called or the
        consumer stops iterating.
        """
        interval = self.config.evaluation_interval_seconds
        self.logger.info("continuous_monitoring_starting", interval_seconds=interval)
        self._is_running = True

        try:
            while self._is_running:
                tick_start = time.perf_counter()

                yield await self.run_all_sessions(session_ids)

                elapsed = time.perf_counter() - tick_start
                sleep_time = max(0.0, interval - elapsed)
                if sleep_time > 0:
                    await asyncio.sleep(sleep_time)
                else:
                    self.logger.warning(
                        "evaluation_slower_than_interval",
                        elapsed_seconds=round(elapsed, 3),
                        interval_seconds=interval,
                    )

        except asyncio.CancelledError:
            self.logger.info("continuous_monitoring_cancelled")
            raise
        finally:
            self._is_running = False

    async def stop(self) -> None:
        """Gracefully stop the monitoring loop."""
        self.logger.info("stopping_alert_monitor")
        self._is_running = False
