"""Apply a computed fetch result to live state."""

from collections.abc import Iterable
from typing import Any

from ibira.cache import CacheLike
from ibira.notifier import Notifier
from ibira.types import (
    CacheEntry,
    CacheOp,
    DeleteOp,
    Event,
    FetchResult,
    SetOp,
    UpdateOp,
)


def _superseded(current: CacheEntry[Any] | None, planned: CacheEntry[Any]) -> bool:
    return current is None or current.written_at != planned.written_at


def apply_cache_operations(operations: Iterable[CacheOp], store: CacheLike) -> None:
    """Apply cache operations to ``store`` in order."""
    for op in operations:
        if isinstance(op, (SetOp, UpdateOp)):
            store.set(op.key, op.entry)
        elif isinstance(op, DeleteOp):
            if op.entry is not None and _superseded(store.get(op.key), op.entry):
                continue
            store.delete(op.key)
        else:
            raise TypeError(f"Unknown cache operation: {op!r}")


def dispatch_events(events: Iterable[Event], notifier: Notifier) -> None:
    """Notify observers of each event in order."""
    for event in events:
        notifier.notify(event.event_type, event.payload)


def apply_effects(
    result: FetchResult[Any], store: CacheLike, notifier: Notifier
) -> None:
    """Apply ``result``'s cache operations, then broadcast its events.

    An observer that raises stops dispatch; cache operations have already
    been applied by then.
    """
    apply_cache_operations(result.cache_operations, store)
    dispatch_events(result.events, notifier)


__all__ = ["apply_cache_operations", "apply_effects", "dispatch_events"]
