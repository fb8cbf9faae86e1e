"""
Tests for the per-session monitoring pipeline.

Covers:
- A cycle persists new alerts and suppresses repeats
- Overlapping cycles for one session are skipped
- Sessions are independent
- Handlers (sync and async) receive new occurrences; failures are contained
- Collector errors fail the cycle without raising
- Dedup keys are kept only once their occurrences reach history
"""

import asyncio
from pathlib import Path
from typing import Any

import pytest

from hostwatch.config import AppConfig, HistoryConfig, MonitoringConfig, ThresholdConfig
from hostwatch.domain.models import (
    HistoryAlert,
    MemoryUsage,
    SocketStats,
    SystemStats,
    TelemetryFamily,
    TelemetrySnapshot,
)
from hostwatch.services.alert_monitor import AlertMonitor
from hostwatch.services.history_store import HistoryStore
from hostwatch.services.telemetry_collector import Result, TelemetryCollector


class InMemoryBackend:
    def __init__(self) -> None:
        self.data: Any | None = None

    def read(self) -> Any | None:
        return self.data

    def write(self, records: list[dict[str, Any]]) -> None:
        self.data = records

    def delete(self) -> None:
        self.data = None


class FlakyBackend(InMemoryBackend):
    """Raises an unexpected error on the first ``failures`` writes."""

    def __init__(self, failures: int = 1) -> None:
        super().__init__()
        self.failures = failures

    def write(self, records: list[dict[str, Any]]) -> None:
        if self.failures:
            self.failures -= 1
            raise RuntimeError("backend unavailable")
        super().write(records)


class StatsSource:
    """Serves a memory reading that tests can change between cycles."""

    family = TelemetryFamily.STATS

    def __init__(self, used: float = 96.0, delay_seconds: float = 0.0) -> None:
        self.used = used
        self.delay_seconds = delay_seconds

    async def fetch(self, session_id: str) -> Result[Any, Exception]:
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        return Result.ok({"memory": {"total": 100, "used": self.used}})


class ExplodingCollector(TelemetryCollector):
    async def collect_snapshot(self, session_id: str) -> TelemetrySnapshot:
        raise RuntimeError("collector down")


@pytest.fixture
def store() -> HistoryStore:
    return HistoryStore(InMemoryBackend())


def _monitor(store: HistoryStore, source: StatsSource | None = None, **kwargs) -> AlertMonitor:
    collector = TelemetryCollector()
    if source is not None:
        collector.add_source(source)
    return AlertMonitor(
        store,
        collector=collector,
        config=MonitoringConfig(evaluation_interval_seconds=0.01),
        **kwargs,
    )


class TestCycles:
    async def test_cycle_persists_new_alerts(self, store: HistoryStore) -> None:
        monitor = _monitor(store, StatsSource(used=96))

        result = await monitor.run_cycle("s1")

        assert result is not None and not result.failed
        assert [a.id for a in result.alerts] == ["memory-critical"]
        assert [h.alert_id for h in result.persisted] == ["memory-critical"]
        assert store.entries("s1")[0].value == "96.0%"
        assert monitor.current_alerts("s1") == result.alerts

    async def test_repeated_alert_is_not_persisted_again(self, store: HistoryStore) -> None:
        source = StatsSource(used=96)
        monitor = _monitor(store, source)

        await monitor.run_cycle("s1")
        second = await monitor.run_cycle("s1")

        assert second is not None
        assert second.persisted == []
        assert len(second.alerts) == 1
        assert len(store) == 1

    async def test_value_change_is_persisted(self, store: HistoryStore) -> None:
        source = StatsSource(used=96)
        monitor = _monitor(store, source)

        await monitor.run_cycle("s1")
        source.used = 97
        await monitor.run_cycle("s1")

        assert [e.value for e in store.entries()] == ["97.0%", "96.0%"]

    async def test_cleared_alert_empties_current_list(self, store: HistoryStore) -> None:
        source = StatsSource(used=96)
        monitor = _monitor(store, source)

        await monitor.run_cycle("s1")
        source.used = 10
        result = await monitor.run_cycle("s1")

        assert result is not None and result.alerts == []
        assert monitor.current_alerts("s1") == []

    async def test_overlapping_cycle_is_skipped(self, store: HistoryStore) -> None:
        monitor = _monitor(store, StatsSource(used=96, delay_seconds=0.1))

        first, second = await asyncio.gather(monitor.run_cycle("s1"), monitor.run_cycle("s1"))

        assert first is not None
        assert second is None
        assert len(store) == 1

    async def test_sessions_are_independent(self, store: HistoryStore) -> None:
        monitor = _monitor(store, StatsSource(used=96))

        results = await monitor.run_all_sessions(["s1", "s2"])

        assert sorted(r.session_id for r in results) == ["s1", "s2"]
        assert len(store.entries("s1")) == 1
        assert len(store.entries("s2")) == 1

    async def test_collector_failure_marks_cycle_failed(self, store: HistoryStore) -> None:
        monitor = AlertMonitor(store, collector=ExplodingCollector())

        result = await monitor.run_cycle("s1")

        assert result is not None and result.failed
        assert len(store) == 0
        assert not monitor.is_cycle_running("s1")

    async def test_failed_history_write_is_retried_next_cycle(self) -> None:
        backend = FlakyBackend(failures=1)
        monitor = _monitor(HistoryStore(backend), StatsSource(used=96))

        first = await monitor.run_cycle("s1")
        second = await monitor.run_cycle("s1")

        assert first is not None and first.failed
        assert second is not None and not second.failed
        assert [h.alert_id for h in second.persisted] == ["memory-critical"]
        assert backend.data is not None and backend.data[0]["alertId"] == "memory-critical"

    async def test_evaluate_snapshot_requires_session(self, store: HistoryStore) -> None:
        monitor = _monitor(store)

        with pytest.raises(ValueError, match="session_id"):
            await monitor.evaluate_snapshot(TelemetrySnapshot())

    async def test_evaluate_pushed_snapshot(self, store: HistoryStore) -> None:
        monitor = _monitor(store)
        snapshot = TelemetrySnapshot(
            session_id="s9",
            stats=SystemStats(memory=MemoryUsage(total=100, used=50)),
            socket_stats=SocketStats(tcp_synrecv=25),
        )

        result = await monitor.evaluate_snapshot(snapshot)

        assert result is not None
        assert [a.id for a in result.alerts] == ["synrecv-critical"]
        assert store.entries("s9")[0].session_id == "s9"


class TestHandlers:
    async def test_sync_and_async_handlers_receive_new_alerts(self, store: HistoryStore) -> None:
        received: list[str] = []

        def sync_handler(alert: HistoryAlert) -> None:
            received.append(f"sync:{alert.alert_id}")

        async def async_handler(alert: HistoryAlert) -> None:
            received.append(f"async:{alert.alert_id}")

        monitor = _monitor(store, StatsSource(used=96), handlers=[sync_handler, async_handler])

        await monitor.run_cycle("s1")
        await monitor.run_cycle("s1")  # repeat, nothing new

        assert received == ["sync:memory-critical", "async:memory-critical"]

    async def test_failing_handler_does_not_break_cycle(self, store: HistoryStore) -> None:
        def broken(alert: HistoryAlert) -> None:
            raise RuntimeError("notifier down")

        monitor = _monitor(store, StatsSource(used=96), handlers=[broken])

        result = await monitor.run_cycle("s1")

        assert result is not None and not result.failed
        assert len(store) == 1


class TestSessions:
    def test_add_and_remove_session(self, store: HistoryStore) -> None:
        monitor = _monitor(store)

        state = monitor.add_session("s1")

        assert monitor.add_session("s1") is state
        assert monitor.sessions == ["s1"]
        monitor.remove_session("s1")
        assert monitor.sessions == []
        assert monitor.session_state("s1") is None


async def test_run_continuously_until_stopped(store: HistoryStore) -> None:
    monitor = _monitor(store, StatsSource(used=96))
    monitor.add_session("s1")
    ticks = 0

    async for results in monitor.run_continuously():
        ticks += 1
        assert [r.session_id for r in results] == ["s1"]
        if ticks == 3:
            await monitor.stop()

    assert ticks == 3
    assert len(store) == 1


def test_from_config_wires_history_and_thresholds(tmp_path: Path) -> None:
    thresholds = tmp_path / "thresholds.json"
    thresholds.write_text('{"memory": {"warning": 10, "critical": 20}}')
    config = AppConfig(
        history=HistoryConfig(path=tmp_path / "history.json", max_entries=10),
        thresholds=ThresholdConfig(overrides_path=thresholds),
    )

    monitor = AlertMonitor.from_config(config)

    assert monitor.history.max_entries == 10
    assert monitor.evaluator.thresholds.memory.critical == 20
