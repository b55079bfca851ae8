"""Coordinates many resource fetchers over one shared cache.

Provides:
- fetch(): cached fetch with request coalescing per cache key
- fetch_multiple(): settle-all fan-out over several resources
- get_cached_data(), clear_cache(), is_loading(): cache and state queries
- subscribe(), unsubscribe(): per-resource observers
- run_maintenance(): expiry and size sweep, also run on a timer
- destroy(), aclose(): lifecycle
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any

from ibira.cache import CacheStore, compute_expired_keys
from ibira.config import Duration, FetchConfig, parse_duration
from ibira.core import Sleep
from ibira.effects import apply_cache_operations
from ibira.errors import ConfigurationError
from ibira.fetcher import ResourceFetcher
from ibira.notifier import EventNotifier, Observer
from ibira.observability import get_logger
from ibira.transport import HttpTransport
from ibira.types import (
    Clock,
    CoordinatorStats,
    DeleteOp,
    NetworkOperation,
    SettledResult,
    UpdateOp,
    now_ms,
)

logger = get_logger("ibira.coordinator")

# Settings of the shared store; they cannot vary per resource
_SHARED_SETTINGS = frozenset({"max_cache_entries", "maintenance_interval"})
_RETRY_SETTINGS = frozenset(
    {"max_retries", "retry_delay", "retry_multiplier", "retryable_status_codes"}
)


def _consume_outcome(task: asyncio.Task[Any]) -> None:
    # Every caller may have detached; mark the failure as retrieved
    if not task.cancelled():
        task.exception()


class FetchCoordinator:
    """Shares one bounded cache across many resources and coalesces requests.

    Each resource id gets a :class:`ResourceFetcher`. Concurrent ``fetch``
    calls for the same cache key share a single underlying fetch; the entry
    is dropped from the pending registry once it settles, successfully or not.

    Usage:
        async with FetchCoordinator(max_cache_entries=200) as coordinator:
            users, posts = await asyncio.gather(
                coordinator.fetch("https://api.example.com/users"),
                coordinator.fetch("https://api.example.com/posts"),
            )
    """

    def __init__(
        self,
        config: FetchConfig | None = None,
        *,
        transport: HttpTransport | None = None,
        network_factory: Callable[[str], NetworkOperation] | None = None,
        clock: Clock = now_ms,
        sleep: Sleep = asyncio.sleep,
        **options: Any,
    ) -> None:
        self._config = (config or FetchConfig()).with_overrides(**options)
        self._store = CacheStore.from_config(self._config)
        self._fetchers: dict[str, ResourceFetcher] = {}
        self._pending: dict[str, asyncio.Task[Any]] = {}
        self._transport = transport
        self._owns_transport = False
        self._network_factory = network_factory
        self._clock = clock
        self._sleep = sleep
        self._maintenance_task: asyncio.Task[None] | None = None
        self.last_maintenance = clock()

    @property
    def config(self) -> FetchConfig:
        return self._config

    @property
    def store(self) -> CacheStore:
        return self._store

    # -------------------------------------------------------------------------
    # Fetchers
    # -------------------------------------------------------------------------

    def _network_for(self, resource_id: str) -> NetworkOperation:
        if self._network_factory is not None:
            return self._network_factory(resource_id)
        if self._transport is None:
            self._transport = HttpTransport()
            self._owns_transport = True
        return self._transport.operation(resource_id)

    def get_fetcher(self, resource_id: str, **overrides: Any) -> ResourceFetcher:
        """Return the fetcher for ``resource_id``, creating it if needed.

        Overrides that differ from the current fetcher's settings replace it
        with a new fetcher sharing the same observers.
        """
        shared = _SHARED_SETTINGS & {k for k, v in overrides.items() if v is not None}
        if shared:
            raise ConfigurationError(
                f"{', '.join(sorted(shared))} apply to the shared cache; "
                "set them on the coordinator"
            )

        existing = self._fetchers.get(resource_id)
        if existing is None:
            fetcher = ResourceFetcher(
                url=resource_id,
                store=self._store,
                notifier=EventNotifier(),
                config=self._config.with_overrides(**overrides),
                network_op=self._network_for(resource_id),
                clock=self._clock,
                sleep=self._sleep,
            )
            self._fetchers[resource_id] = fetcher
            return fetcher

        replacement = existing.reconfigured(**overrides)
        if replacement is not existing and replacement.config != existing.config:
            logger.debug("Replacing fetcher for %s with new settings", resource_id)
            self._fetchers[resource_id] = replacement
            return replacement
        return existing

    def _cache_key_for(self, resource_id: str) -> str:
        fetcher = self._fetchers.get(resource_id)
        return fetcher.cache_key if fetcher is not None else resource_id

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    async def fetch(self, resource_id: str, **overrides: Any) -> Any:
        """Fetch ``resource_id``, joining an in-flight request if one exists.

        Cancelling one caller detaches only that caller; the shared request
        keeps running for the others.
        """
        fetcher = self.get_fetcher(resource_id, **overrides)
        key = fetcher.cache_key

        task = self._pending.get(key)
        if task is None:
            self._ensure_maintenance()
            task = asyncio.get_running_loop().create_task(self._execute(key, fetcher))
            task.add_done_callback(_consume_outcome)
            self._pending[key] = task
        else:
            logger.debug("Joining in-flight request for %s", key)

        return await asyncio.shield(task)

    async def _execute(self, key: str, fetcher: ResourceFetcher) -> Any:
        try:
            return await fetcher.fetch(self._store)
        finally:
            if self._pending.get(key) is asyncio.current_task():
                del self._pending[key]

    async def fetch_multiple(
        self, resource_ids: Iterable[str], **overrides: Any
    ) -> list[SettledResult[Any]]:
        """Fetch several resources; one failure never aborts the others."""
        ids = list(resource_ids)
        outcomes = await asyncio.gather(
            *(self.fetch(resource_id, **overrides) for resource_id in ids),
            return_exceptions=True,
        )
        results: list[SettledResult[Any]] = []
        for resource_id, outcome in zip(ids, outcomes):
            if isinstance(outcome, BaseException):
                results.append(
                    SettledResult(resource_id=resource_id, status="rejected", reason=outcome)
                )
            else:
                results.append(
                    SettledResult(resource_id=resource_id, status="fulfilled", value=outcome)
                )
        return results

    # -------------------------------------------------------------------------
    # Observers
    # -------------------------------------------------------------------------

    def subscribe(self, resource_id: str, observer: Observer) -> None:
        self.get_fetcher(resource_id).subscribe(observer)

    def unsubscribe(self, resource_id: str, observer: Observer) -> None:
        fetcher = self._fetchers.get(resource_id)
        if fetcher is not None:
            fetcher.unsubscribe(observer)

    # -------------------------------------------------------------------------
    # Cache access
    # -------------------------------------------------------------------------

    def is_loading(self, resource_id: str) -> bool:
        return self._cache_key_for(resource_id) in self._pending

    def get_cached_data(self, resource_id: str) -> Any | None:
        """Cached data without fetching; ``None`` if absent or expired.

        A hit refreshes the entry's write time; an expired entry is removed.
        """
        key = self._cache_key_for(resource_id)
        entry = self._store.get(key)
        if entry is None:
            return None
        now = self._clock()
        if entry.is_expired(now):
            apply_cache_operations([DeleteOp(key=key)], self._store)
            return None
        apply_cache_operations([UpdateOp(key=key, entry=entry.refreshed(now))], self._store)
        return entry.data

    def clear_cache(self, resource_id: str | None = None) -> None:
        """Clear one resource's entry, or everything when no id is given."""
        if resource_id is None:
            self._store.clear()
        else:
            self._store.delete(self._cache_key_for(resource_id))

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def run_maintenance(self) -> int:
        """Remove expired entries and re-enforce the size bound.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = self._store.remove_expired(now)
        evicted = self._store.enforce_size_limit()
        self.last_maintenance = now
        logger.debug(
            "Maintenance removed %d expired and %d evicted entries",
            len(expired),
            len(evicted),
        )
        return len(expired) + len(evicted)

    async def _maintenance_loop(self) -> None:
        interval = int(self._config.maintenance_interval) / 1000
        while True:
            await asyncio.sleep(interval)
            self.run_maintenance()

    def _ensure_maintenance(self) -> None:
        if self._maintenance_task is None or self._maintenance_task.done():
            self._maintenance_task = asyncio.get_running_loop().create_task(
                self._maintenance_loop()
            )

    def start(self) -> None:
        """Start periodic maintenance. Requires a running event loop."""
        self._ensure_maintenance()

    @property
    def maintenance_running(self) -> bool:
        return self._maintenance_task is not None and not self._maintenance_task.done()

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def get_retry_config(self) -> dict[str, Any]:
        return self._config.retry_settings()

    def set_retry_config(self, **retry_config: Any) -> None:
        """Change default retry settings for fetchers created from now on."""
        unknown = set(retry_config) - _RETRY_SETTINGS
        if unknown:
            raise ConfigurationError(
                f"Not retry settings: {', '.join(sorted(unknown))}"
            )
        self._config = self._config.with_overrides(**retry_config)

    def set_retry_config_for(self, resource_id: str, **retry_config: Any) -> ResourceFetcher:
        """Replace ``resource_id``'s fetcher with one using new retry settings."""
        unknown = set(retry_config) - _RETRY_SETTINGS
        if unknown:
            raise ConfigurationError(
                f"Not retry settings: {', '.join(sorted(unknown))}"
            )
        return self.get_fetcher(resource_id, **retry_config)

    def set_max_cache_size(self, size: int) -> None:
        """Change the shared cache's size bound and enforce it immediately."""
        self._config = self._config.with_overrides(max_cache_entries=size)
        self._store.resize(size)

    def set_cache_ttl(self, ttl: Duration) -> None:
        """Change the lifetime of entries written from now on."""
        ttl_ms = parse_duration(ttl)
        self._config = self._config.with_overrides(cache_ttl=ttl_ms)
        self._store.ttl = ttl_ms
        for resource_id, fetcher in list(self._fetchers.items()):
            self._fetchers[resource_id] = fetcher.reconfigured(cache_ttl=ttl_ms)

    # -------------------------------------------------------------------------
    # Stats and lifecycle
    # -------------------------------------------------------------------------

    def get_stats(self) -> CoordinatorStats:
        now = self._clock()
        size = self._store.size
        max_size = self._store.max_entries
        return CoordinatorStats(
            active_fetchers=len(self._fetchers),
            pending_requests=len(self._pending),
            cache_size=size,
            max_cache_size=max_size,
            expired_entries=len(compute_expired_keys(self._store.snapshot(), now)),
            cache_utilization=round(size / max_size * 100),
            last_maintenance=datetime.fromtimestamp(
                self.last_maintenance / 1000, tz=timezone.utc
            ).isoformat(),
            cache_ttl=self._store.ttl,
            subscribers={
                resource_id: fetcher.notifier.subscriber_count
                for resource_id, fetcher in self._fetchers.items()
            },
        )

    def destroy(self) -> None:
        """Stop maintenance, cancel pending requests and clear all state."""
        if self._maintenance_task is not None:
            self._maintenance_task.cancel()
            self._maintenance_task = None
        for task in self._pending.values():
            task.cancel()
        self._pending.clear()
        self._fetchers.clear()
        self._store.clear()
        logger.debug("Coordinator destroyed")

    async def aclose(self) -> None:
        """Destroy and close the HTTP transport if the coordinator created it."""
        self.destroy()
        if self._transport is not None and self._owns_transport:
            await self._transport.aclose()
            self._transport = None
            self._owns_transport = False

    async def __aenter__(self) -> FetchCoordinator:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


__all__ = ["FetchCoordinator"]
