"""
Alert deduplication between consecutive evaluation cycles.

An alert is identified by its rule id plus its formatted display value. If
the same rule fires again with the same value it is not persisted again; a
different value (even by a tenth of a percent) counts as a new occurrence.
The key set returned for the next cycle replaces the previous one, so an
alert that stops firing no longer suppresses anything.
"""

from collections.abc import Iterable, Sequence

from hostwatch.domain.models import Alert


def dedup_key(alert: Alert) -> str:
    return f"{alert.id}-{alert.value}"


def reconcile(
    current_alerts: Sequence[Alert], last_emitted_keys: Iterable[str]
) -> tuple[list[Alert], frozenset[str]]:
    """
    Split the current alerts into those that should be persisted.

    Returns:
        (to_persist, new_keys): alerts whose key was not emitted last cycle, in
        input order, and the key set of every current alert.
    """
    previous = frozenset(last_emitted_keys)
    to_persist = [alert for alert in current_alerts if dedup_key(alert) not in previous]
    new_keys = frozenset(dedup_key(alert) for alert in current_alerts)
    return to_persist, new_keys
