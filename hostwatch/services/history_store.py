"""
Bounded, durable alert history.

The store is a single most-recent-first log of HistoryAlert records capped at
``max_entries``. New entries go to the head; once the cap is exceeded the
oldest entries fall off the tail (FIFO, not LRU). The whole collection is
rewritten to the backend after every change.

Persistence problems are never fatal: an unreadable or corrupt file loads as
an empty history, and a failed write is logged while the in-memory log keeps
the new entries.
"""

import json
import os
import tempfile
import threading
from collections.abc import Iterable, Sequence
from datetime import datetime, time, timedelta
from pathlib import Path
from typing import Any, Protocol

import structlog
from pydantic import ValidationError

from hostwatch.domain.models import (
    Alert,
    AlertCategory,
    CategoryFilter,
    DateWindow,
    HistoryAlert,
)

logger = structlog.get_logger(__name__)

MAX_HISTORY = 500
DATE_WINDOWS: tuple[DateWindow, ...] = ("all", "today", "week")


class HistoryBackend(Protocol):
    """Durable substrate holding the serialized history under one key."""

    def read(self) -> Any | None:
        """Return the decoded collection, or None if nothing is stored."""
        ...

    def write(self, records: list[dict[str, Any]]) -> None: ...

    def delete(self) -> None: ...


class JsonFileHistoryBackend:
    """History kept as one JSON array in a file, replaced atomically on write."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path).expanduser()

    def read(self) -> Any | None:
        if not self.path.exists():
            return None
        return json.loads(self.path.read_text(encoding="utf-8"))

    def write(self, records: list[dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".history-", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(records, fh)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self) -> None:
        self.path.unlink(missing_ok=True)


# ── query helpers ──────────────────────────────


def _local_now(now: datetime | None) -> datetime:
    # naive datetimes are taken as local time
    return (now or datetime.now()).astimezone()


def window_start(window: DateWindow, now: datetime | None = None) -> datetime | None:
    """Earliest timestamp kept by ``window``; None means no lower bound."""
    if window not in DATE_WINDOWS:
        raise ValueError(f"Unknown date window: {window!r}")

    now = _local_now(now)
    if window == "today":
        # midnight may carry a different UTC offset than now (DST change days)
        return datetime.combine(now.date(), time.min).astimezone()
    if window == "week":
        # rolling 7x24h, not calendar aligned
        return now - timedelta(days=7)
    return None


def filter_history(
    entries: Iterable[HistoryAlert],
    category: CategoryFilter | str = "all",
    window: DateWindow = "all",
    now: datetime | None = None,
) -> list[HistoryAlert]:
    """Entries matching ``category`` and falling inside ``window``, order preserved."""
    wanted = None if category == "all" else AlertCategory(category)
    cutoff = window_start(window, now)

    return [
        entry
        for entry in entries
        if (wanted is None or entry.category == wanted)
        and (cutoff is None or entry.timestamp >= cutoff)
    ]


def day_label(timestamp: datetime) -> str:
    """Long calendar date of ``timestamp`` in local time, e.g. 'Sunday, October 18, 2026'."""
    local = timestamp.astimezone()
    return f"{local:%A}, {local:%B} {local.day}, {local.year}"


def group_by_day(entries: Iterable[HistoryAlert]) -> dict[str, list[HistoryAlert]]:
    """Group by local calendar day; groups keep the order of their first entry."""
    groups: dict[str, list[HistoryAlert]] = {}
    for entry in entries:
        groups.setdefault(day_label(entry.timestamp), []).append(entry)
    return groups


# ── store ──────────────────────────────────────


class HistoryStore:
    """
    Capacity-bounded alert history with durable storage.

    Writers are serialized with a lock: every change is a read-modify-write
    of the whole log.
    """

    def __init__(
        self,
        backend: HistoryBackend | None = None,
        *,
        path: Path | str | None = None,
        max_entries: int = MAX_HISTORY,
        load: bool = True,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        if backend is None:
            if path is None:
                raise ValueError("HistoryStore needs a backend or a path")
            backend = JsonFileHistoryBackend(path)

        self.backend = backend
        self.max_entries = max_entries
        self.logger = logger.bind(component="history_store")
        self._entries: list[HistoryAlert] = []
        self._lock = threading.Lock()

        if load:
            self.load_all()

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self, session_id: str | None = None) -> list[HistoryAlert]:
        """Current log, most recent first, optionally scoped to one session."""
        snapshot = list(self._entries)
        if session_id is None:
            return snapshot
        return [entry for entry in snapshot if entry.session_id == session_id]

    def load_all(self, session_id: str | None = None) -> list[HistoryAlert]:
        """Reload the log from the backend. Absent or corrupt storage loads as empty."""
        with self._lock:
            self._entries = self._read()
        return self.entries(session_id)

    def _read(self) -> list[HistoryAlert]:
        try:
            raw = self.backend.read()
        except (OSError, ValueError) as e:
            self.logger.error("history_load_failed", error=str(e))
            return []

        if raw is None:
            return []
        if not isinstance(raw, list):
            self.logger.error("history_load_failed", error="stored history is not a list")
            return []

        loaded: list[HistoryAlert] = []
        skipped = 0
        for record in raw:
            try:
                loaded.append(HistoryAlert.model_validate(record))
            except ValidationError:
                skipped += 1

        if skipped:
            self.logger.warning("history_records_skipped", skipped=skipped, kept=len(loaded))
        self.logger.debug("history_loaded", entries=len(loaded))
        return loaded[: self.max_entries]

    def _persist(self) -> bool:
        records = [entry.to_record() for entry in self._entries]
        try:
            self.backend.write(records)
        except (OSError, TypeError, ValueError) as e:
            self.logger.error("history_save_failed", error=str(e), entries=len(records))
            return False
        return True

    def append(self, alert: Alert | HistoryAlert, session_id: str | None = None) -> HistoryAlert:
        """Insert one occurrence at the head and persist."""
        return self.append_many([alert], session_id)[0]

    def append_many(
        self, alerts: Sequence[Alert | HistoryAlert], session_id: str | None = None
    ) -> list[HistoryAlert]:
        """
        Insert several occurrences with a single write.

        The result is the same as appending them one by one: the last alert
        ends up at the head.
        """
        created = [self._to_history(alert, session_id) for alert in alerts]
        if not created:
            return []

        with self._lock:
            updated = list(reversed(created)) + self._entries
            evicted = max(0, len(updated) - self.max_entries)
            self._entries = updated[: self.max_entries]
            self._persist()

        if evicted:
            self.logger.debug("history_entries_evicted", evicted=evicted)
        return created

    @staticmethod
    def _to_history(alert: Alert | HistoryAlert, session_id: str | None) -> HistoryAlert:
        if isinstance(alert, HistoryAlert):
            return alert
        if session_id is None:
            raise ValueError("session_id is required to record an Alert")
        return HistoryAlert.from_alert(alert, session_id)

    def clear(self, session_id: str | None = None) -> bool:
        """Remove every entry, or only ``session_id``'s entries. Returns False on I/O failure."""
        with self._lock:
            if session_id is None:
                self._entries = []
                try:
                    self.backend.delete()
                except OSError as e:
                    self.logger.error("history_clear_failed", error=str(e))
                    return False
                self.logger.info("history_cleared")
                return True

            self._entries = [e for e in self._entries if e.session_id != session_id]
            ok = self._persist()

        self.logger.info("history_cleared", session_id=session_id)
        return ok

    def filter(
        self,
        category: CategoryFilter | str = "all",
        window: DateWindow = "all",
        session_id: str | None = None,
        now: datetime | None = None,
    ) -> list[HistoryAlert]:
        return filter_history(self.entries(session_id), category, window, now)

    group_by_day = staticmethod(group_by_day)
