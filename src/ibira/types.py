"""Core value types for ibira."""

import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, Generic, Literal, TypeVar

T = TypeVar("T")

# Zero-argument coroutine function returning parsed response data
NetworkOperation = Callable[[], Awaitable[Any]]

# Returns the current time as Unix timestamp ms
Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time as Unix timestamp ms."""
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    """A cached value with write and expiry timestamps."""

    data: T
    written_at: int  # Unix timestamp ms
    expires_at: int  # written_at + ttl

    def is_expired(self, now: int) -> bool:
        return self.expires_at <= now

    def refreshed(self, now: int) -> "CacheEntry[T]":
        """New entry with the same data and expiry, rewritten at ``now``."""
        return CacheEntry(data=self.data, written_at=now, expires_at=self.expires_at)


# -----------------------------------------------------------------------------
# Cache operations
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SetOp:
    """Store a freshly fetched entry."""

    key: str
    entry: CacheEntry[Any]
    op_type: ClassVar[str] = "set"


@dataclass(frozen=True, slots=True)
class UpdateOp:
    """Replace an existing entry with a refreshed copy."""

    key: str
    entry: CacheEntry[Any]
    op_type: ClassVar[str] = "update"


@dataclass(frozen=True, slots=True)
class DeleteOp:
    """Remove an entry.

    With ``entry`` set, the delete is skipped unless the store still holds an
    entry written at the same time; a newer write wins over a stale eviction.
    """

    key: str
    entry: CacheEntry[Any] | None = None
    op_type: ClassVar[str] = "delete"


CacheOp = SetOp | UpdateOp | DeleteOp


# -----------------------------------------------------------------------------
# Lifecycle events
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LoadingStart:
    resource_id: str
    cache_key: str
    event_type: ClassVar[str] = "loading-start"

    @property
    def payload(self) -> dict[str, Any]:
        return {"resource_id": self.resource_id, "cache_key": self.cache_key}


@dataclass(frozen=True, slots=True)
class Success:
    data: Any
    event_type: ClassVar[str] = "success"

    @property
    def payload(self) -> Any:
        return self.data


@dataclass(frozen=True, slots=True)
class Retry:
    attempt: int
    max_attempts: int
    error: BaseException
    retry_in_ms: int
    event_type: ClassVar[str] = "retry"

    @property
    def payload(self) -> dict[str, Any]:
        return {
            "attempt": self.attempt,
            "max_attempts": self.max_attempts,
            "error": self.error,
            "retry_in_ms": self.retry_in_ms,
        }


@dataclass(frozen=True, slots=True)
class Error:
    error: BaseException
    attempts: int
    max_attempts: int
    event_type: ClassVar[str] = "error"

    @property
    def payload(self) -> dict[str, Any]:
        return {
            "error": self.error,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
        }


Event = LoadingStart | Success | Retry | Error
EventType = Literal["loading-start", "success", "retry", "error"]


# -----------------------------------------------------------------------------
# Results
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FetchMeta:
    """Bookkeeping about how a result was computed."""

    cache_key: str
    timestamp: int
    expired_keys_removed: int
    attempts: int = 0
    network_request: bool = False


@dataclass(frozen=True, slots=True)
class FetchResult(Generic[T]):
    """Description of what a fetch should do, produced without side effects."""

    success: bool
    from_cache: bool
    cache_operations: tuple[CacheOp, ...]
    events: tuple[Event, ...]
    new_cache_state: Mapping[str, CacheEntry[Any]]
    meta: FetchMeta
    data: T | None = None
    error: BaseException | None = None


@dataclass(frozen=True, slots=True)
class SettledResult(Generic[T]):
    """Outcome of one fetch in a settle-all fan-out."""

    resource_id: str
    status: Literal["fulfilled", "rejected"]
    value: T | None = None
    reason: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.status == "fulfilled"


@dataclass(frozen=True, slots=True)
class CoordinatorStats:
    """Snapshot of a coordinator's state."""

    active_fetchers: int
    pending_requests: int
    cache_size: int
    max_cache_size: int
    expired_entries: int
    cache_utilization: int  # percent
    last_maintenance: str  # ISO-8601 UTC
    cache_ttl: int
    subscribers: dict[str, int] = field(default_factory=dict)


__all__ = [
    "CacheEntry",
    "CacheOp",
    "Clock",
    "CoordinatorStats",
    "DeleteOp",
    "Error",
    "Event",
    "EventType",
    "FetchMeta",
    "FetchResult",
    "LoadingStart",
    "NetworkOperation",
    "Retry",
    "SetOp",
    "SettledResult",
    "Success",
    "UpdateOp",
    "now_ms",
]
