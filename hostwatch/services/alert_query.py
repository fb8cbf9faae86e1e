"""
Read side for presentation: current alerts, history views and counts.

Rendering is left to the caller; this module only shapes data.
"""

from datetime import datetime

import structlog
from pydantic import BaseModel, Field

from hostwatch.domain.models import (
    Alert,
    AlertCategory,
    CategoryFilter,
    DateWindow,
    HistoryAlert,
)
from hostwatch.services.alert_monitor import AlertMonitor
from hostwatch.services.history_store import HistoryStore, filter_history, group_by_day

logger = structlog.get_logger(__name__)

# Category filters offered to operators, in display order
CATEGORY_FILTERS: tuple[CategoryFilter, ...] = (
    "all",
    AlertCategory.SECURITY,
    AlertCategory.MEMORY,
    AlertCategory.CPU,
    AlertCategory.DISK,
    AlertCategory.NETWORK,
    AlertCategory.PROCESS,
)


class HistoryDayGroup(BaseModel):
    label: str = Field(description="Long local calendar date")
    alerts: list[HistoryAlert]


class HistoryView(BaseModel):
    """Filtered history, flat and grouped by day (most recent day first)."""

    category: str
    window: DateWindow
    entries: list[HistoryAlert]
    groups: list[HistoryDayGroup]

    @property
    def total(self) -> int:
        return len(self.entries)


def _filter_key(category: CategoryFilter) -> str:
    return "all" if category == "all" else AlertCategory(category).value


def count_by_category(alerts: list[Alert] | list[HistoryAlert]) -> dict[str, int]:
    """Counts for every category filter, ``all`` included."""
    counts = {_filter_key(category): 0 for category in CATEGORY_FILTERS}
    counts["all"] = len(alerts)
    for alert in alerts:
        key = alert.category.value
        if key in counts:
            counts[key] += 1
    return counts


def format_time(timestamp: datetime) -> str:
    """Local wall-clock time, e.g. '02:05:09 PM'."""
    return timestamp.astimezone().strftime("%I:%M:%S %p")


def format_relative_time(timestamp: datetime, now: datetime | None = None) -> str:
    now = (now or datetime.now()).astimezone()
    elapsed = (now - timestamp.astimezone()).total_seconds()

    minutes = int(elapsed // 60)
    hours = int(elapsed // 3600)
    days = int(elapsed // 86400)

    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes} minutes ago"
    if hours < 24:
        return f"{hours} hours ago"
    return f"{days} days ago"


class AlertQueryService:
    """Query adapter over the monitor's current state and the history store."""

    def __init__(self, store: HistoryStore, monitor: AlertMonitor | None = None) -> None:
        self.store = store
        self.monitor = monitor
        self.logger = logger.bind(component="alert_query")

    def current_alerts(self, session_id: str, category: CategoryFilter = "all") -> list[Alert]:
        """Alerts from the session's latest evaluation, critical first."""
        if self.monitor is None:
            return []
        alerts = self.monitor.current_alerts(session_id)
        if category == "all":
            return alerts
        wanted = AlertCategory(category)
        return [alert for alert in alerts if alert.category == wanted]

    def history(
        self,
        category: CategoryFilter = "all",
        window: DateWindow = "all",
        session_id: str | None = None,
        now: datetime | None = None,
    ) -> HistoryView:
        entries = self.store.filter(category, window, session_id=session_id, now=now)
        groups = [
            HistoryDayGroup(label=label, alerts=alerts)
            for label, alerts in group_by_day(entries).items()
        ]
        return HistoryView(
            category=_filter_key(category), window=window, entries=entries, groups=groups
        )

    def current_counts(self, session_id: str) -> dict[str, int]:
        return count_by_category(self.current_alerts(session_id))

    def history_counts(
        self,
        window: DateWindow = "all",
        session_id: str | None = None,
        now: datetime | None = None,
    ) -> dict[str, int]:
        """Per-category counts over the date-filtered history."""
        entries = filter_history(self.store.entries(session_id), "all", window, now)
        return count_by_category(entries)

    def clear_history(self, session_id: str | None = None) -> bool:
        ok = self.store.clear(session_id)
        if not ok:
            self.logger.warning("clear_history_incomplete", session_id=session_id)
        return ok
