"""Bounded in-memory cache store and pure eviction helpers."""

from collections.abc import Iterator, Mapping
from typing import Any, Protocol, runtime_checkable

from ibira.config import Duration, FetchConfig, parse_duration
from ibira.errors import ConfigurationError
from ibira.types import CacheEntry


def compute_expired_keys(snapshot: Mapping[str, CacheEntry[Any]], now: int) -> list[str]:
    """Keys whose entries have ``expires_at <= now``, in mapping order."""
    return [key for key, entry in snapshot.items() if entry.is_expired(now)]


def compute_evictions(
    snapshot: Mapping[str, CacheEntry[Any]], max_entries: int
) -> list[str]:
    """Keys that must go for ``snapshot`` to fit within ``max_entries``.

    Oldest ``written_at`` first. ``sorted`` is stable, so entries sharing a
    timestamp leave in the mapping's insertion order.
    """
    excess = len(snapshot) - max_entries
    if excess <= 0:
        return []
    by_age = sorted(snapshot.items(), key=lambda item: item[1].written_at)
    return [key for key, _ in by_age[:excess]]


@runtime_checkable
class CacheLike(Protocol):
    """Interface shared by every cache store."""

    max_entries: int
    ttl: int

    def has(self, key: str) -> bool: ...

    def get(self, key: str) -> CacheEntry[Any] | None: ...

    def set(self, key: str, entry: CacheEntry[Any]) -> None: ...

    def delete(self, key: str) -> bool: ...

    def clear(self) -> None: ...

    @property
    def size(self) -> int: ...

    def entries(self) -> list[tuple[str, CacheEntry[Any]]]: ...

    def snapshot(self) -> dict[str, CacheEntry[Any]]: ...


class CacheStore:
    """In-memory store bounded by entry count, evicting oldest writes first.

    Expired entries are left in place on read; callers remove them with
    :func:`compute_expired_keys` or :meth:`remove_expired`.
    """

    def __init__(self, max_entries: int = 100, ttl: Duration = "5m") -> None:
        if max_entries < 1:
            raise ConfigurationError("max_entries must be at least 1")
        self._entries: dict[str, CacheEntry[Any]] = {}
        self.max_entries = max_entries
        self.ttl = parse_duration(ttl)

    @classmethod
    def from_config(cls, config: FetchConfig) -> "CacheStore":
        return cls(max_entries=config.max_cache_entries, ttl=config.cache_ttl)

    def has(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> CacheEntry[Any] | None:
        return self._entries.get(key)

    def set(self, key: str, entry: CacheEntry[Any]) -> None:
        self._entries[key] = entry
        self.enforce_size_limit()

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    @property
    def size(self) -> int:
        return len(self._entries)

    def entries(self) -> list[tuple[str, CacheEntry[Any]]]:
        return list(self._entries.items())

    def snapshot(self) -> dict[str, CacheEntry[Any]]:
        """Shallow copy of the current contents."""
        return dict(self._entries)

    def enforce_size_limit(self) -> list[str]:
        """Evict oldest writes until the bound holds. Returns evicted keys."""
        evicted = compute_evictions(self._entries, self.max_entries)
        for key in evicted:
            del self._entries[key]
        return evicted

    def remove_expired(self, now: int) -> list[str]:
        expired = compute_expired_keys(self._entries, now)
        for key in expired:
            del self._entries[key]
        return expired

    def resize(self, max_entries: int) -> list[str]:
        """Change the size bound and enforce it immediately."""
        if max_entries < 1:
            raise ConfigurationError("max_entries must be at least 1")
        self.max_entries = max_entries
        return self.enforce_size_limit()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def __repr__(self) -> str:
        return (
            f"CacheStore(size={len(self._entries)}, "
            f"max_entries={self.max_entries}, ttl={self.ttl})"
        )


class NullCacheStore:
    """Store that never holds anything; every lookup is a miss."""

    def __init__(self, max_entries: int = 100, ttl: Duration = "5m") -> None:
        self.max_entries = max_entries
        self.ttl = parse_duration(ttl)

    def has(self, key: str) -> bool:
        return False

    def get(self, key: str) -> CacheEntry[Any] | None:
        return None

    def set(self, key: str, entry: CacheEntry[Any]) -> None:
        pass

    def delete(self, key: str) -> bool:
        return False

    def clear(self) -> None:
        pass

    @property
    def size(self) -> int:
        return 0

    def entries(self) -> list[tuple[str, CacheEntry[Any]]]:
        return []

    def snapshot(self) -> dict[str, CacheEntry[Any]]:
        return {}

    def __contains__(self, key: object) -> bool:
        return False

    def __len__(self) -> int:
        return 0


__all__ = [
    "CacheLike",
    "CacheStore",
    "NullCacheStore",
    "compute_evictions",
    "compute_expired_keys",
]
