"""ibira - cached, retrying, coalescing data fetching for Python."""

from ibira.cache import (
    CacheLike,
    CacheStore,
    NullCacheStore,
    compute_evictions,
    compute_expired_keys,
)
from ibira.config import (
    DEFAULT_RETRYABLE_STATUS_CODES,
    Duration,
    FetchConfig,
    parse_duration,
)
from ibira.coordinator import FetchCoordinator
from ibira.core import compute_fetch
from ibira.effects import apply_cache_operations, apply_effects, dispatch_events
from ibira.errors import (
    ConfigurationError,
    DecodingError,
    FetchTimeoutError,
    HttpStatusError,
    IbiraError,
    TransientNetworkError,
)
from ibira.fetcher import ResourceFetcher
from ibira.notifier import (
    CallbackNotifier,
    EventNotifier,
    Notifier,
    Observer,
    SilentNotifier,
)
from ibira.observability import configure_logging, get_logger
from ibira.retry import RetryPolicy, compute_delay
from ibira.transport import HttpTransport
from ibira.types import (
    CacheEntry,
    CacheOp,
    CoordinatorStats,
    DeleteOp,
    Error,
    Event,
    FetchMeta,
    FetchResult,
    LoadingStart,
    Retry,
    SetOp,
    SettledResult,
    Success,
    UpdateOp,
)

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_RETRYABLE_STATUS_CODES",
    "CacheEntry",
    "CacheLike",
    "CacheOp",
    "CacheStore",
    "CallbackNotifier",
    "ConfigurationError",
    "CoordinatorStats",
    "DecodingError",
    "DeleteOp",
    "Duration",
    "Error",
    "Event",
    "EventNotifier",
    "FetchConfig",
    "FetchCoordinator",
    "FetchMeta",
    "FetchResult",
    "FetchTimeoutError",
    "HttpStatusError",
    "HttpTransport",
    "IbiraError",
    "LoadingStart",
    "Notifier",
    "NullCacheStore",
    "Observer",
    "ResourceFetcher",
    "Retry",
    "RetryPolicy",
    "SetOp",
    "SettledResult",
    "SilentNotifier",
    "Success",
    "TransientNetworkError",
    "UpdateOp",
    "apply_cache_operations",
    "apply_effects",
    "compute_delay",
    "compute_evictions",
    "compute_expired_keys",
    "compute_fetch",
    "configure_logging",
    "dispatch_events",
    "get_logger",
    "parse_duration",
]
