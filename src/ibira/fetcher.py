"""Single-resource fetcher."""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ibira.cache import CacheLike, CacheStore, NullCacheStore
from ibira.config import FetchConfig
from ibira.core import Sleep, compute_fetch
from ibira.effects import apply_effects
from ibira.notifier import (
    CallbackNotifier,
    EventNotifier,
    Notifier,
    Observer,
    SilentNotifier,
)
from ibira.retry import RetryPolicy
from ibira.transport import HttpTransport
from ibira.types import CacheEntry, Clock, FetchResult, NetworkOperation, now_ms


@dataclass(frozen=True, eq=False)
class ResourceFetcher:
    """Fetches and caches one resource.

    Instances are immutable: reconfiguring returns a new fetcher via
    :meth:`reconfigured`. The side-effect-free core is :meth:`fetch_pure`;
    :meth:`fetch` runs it and applies the outcome to the store and observers.

    Usage:
        fetcher = ResourceFetcher.with_default_cache("https://api.example.com/users")
        fetcher.subscribe(observer)
        users = await fetcher.fetch()
    """

    url: str
    store: CacheLike
    notifier: Notifier = field(default_factory=EventNotifier)
    config: FetchConfig = field(default_factory=FetchConfig)
    network_op: NetworkOperation | None = None
    retry_policy: RetryPolicy | None = None
    clock: Clock = now_ms
    sleep: Sleep = asyncio.sleep

    def __post_init__(self) -> None:
        if self.retry_policy is None:
            object.__setattr__(self, "retry_policy", RetryPolicy.from_config(self.config))

    # -------------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------------

    @classmethod
    def with_default_cache(
        cls, url: str, config: FetchConfig | None = None, **kwargs: Any
    ) -> ResourceFetcher:
        """Fetcher with its own bounded store built from ``config``."""
        config = config or FetchConfig()
        return cls(url=url, store=CacheStore.from_config(config), config=config, **kwargs)

    @classmethod
    def with_external_cache(
        cls,
        url: str,
        store: CacheLike,
        config: FetchConfig | None = None,
        **kwargs: Any,
    ) -> ResourceFetcher:
        """Fetcher sharing a caller-owned store."""
        return cls(url=url, store=store, config=config or FetchConfig(), **kwargs)

    @classmethod
    def without_cache(
        cls, url: str, config: FetchConfig | None = None, **kwargs: Any
    ) -> ResourceFetcher:
        """Fetcher that hits the network on every call."""
        config = config or FetchConfig()
        store = NullCacheStore(max_entries=config.max_cache_entries, ttl=config.cache_ttl)
        return cls(url=url, store=store, config=config, **kwargs)

    @classmethod
    def with_event_callback(
        cls,
        url: str,
        callback: Callable[..., Any],
        config: FetchConfig | None = None,
        *,
        store: CacheLike | None = None,
        **kwargs: Any,
    ) -> ResourceFetcher:
        """Fetcher that sends every event to ``callback(event_type, payload)``."""
        config = config or FetchConfig()
        return cls(
            url=url,
            store=store if store is not None else CacheStore.from_config(config),
            notifier=CallbackNotifier(callback),
            config=config,
            **kwargs,
        )

    @classmethod
    def without_events(
        cls,
        url: str,
        config: FetchConfig | None = None,
        *,
        store: CacheLike | None = None,
        **kwargs: Any,
    ) -> ResourceFetcher:
        """Fetcher that never notifies anyone."""
        config = config or FetchConfig()
        return cls(
            url=url,
            store=store if store is not None else CacheStore.from_config(config),
            notifier=SilentNotifier(),
            config=config,
            **kwargs,
        )

    @classmethod
    def pure(
        cls, url: str, config: FetchConfig | None = None, **kwargs: Any
    ) -> ResourceFetcher:
        """Fetcher with no store and no events; use with :meth:`fetch_pure`."""
        config = config or FetchConfig()
        store = NullCacheStore(max_entries=config.max_cache_entries, ttl=config.cache_ttl)
        return cls(
            url=url, store=store, notifier=SilentNotifier(), config=config, **kwargs
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def cache_key(self) -> str:
        """Key under which this resource is cached. Override to customise."""
        return self.url

    @property
    def ttl(self) -> int:
        return int(self.config.cache_ttl)

    def reconfigured(self, **overrides: Any) -> ResourceFetcher:
        """New fetcher with updated settings, same store and observers."""
        config = self.config.with_overrides(**overrides)
        if config is self.config:
            return self
        return dataclasses.replace(self, config=config, retry_policy=None)

    # -------------------------------------------------------------------------
    # Observers
    # -------------------------------------------------------------------------

    def subscribe(self, observer: Observer) -> None:
        self.notifier.subscribe(observer)

    def unsubscribe(self, observer: Observer) -> None:
        self.notifier.unsubscribe(observer)

    def notify_observers(self, *args: Any) -> None:
        self.notifier.notify(*args)

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    def _default_operation(self) -> NetworkOperation:
        if self.network_op is not None:
            return self.network_op

        async def fetch_over_http() -> Any:
            async with HttpTransport() as transport:
                return await transport.get_json(self.url)

        return fetch_over_http

    async def fetch_pure(
        self,
        snapshot: Mapping[str, CacheEntry[Any]] | None = None,
        now: int | None = None,
        network_op: NetworkOperation | None = None,
    ) -> FetchResult[Any]:
        """Describe a fetch without touching the store or observers.

        Args:
            snapshot: Cache contents to use (default: a copy of the store)
            now: Current time in ms (default: the fetcher's clock)
            network_op: Network operation (default: the configured one)
        """
        assert self.retry_policy is not None
        return await compute_fetch(
            snapshot if snapshot is not None else self.store.snapshot(),
            self.url,
            now if now is not None else self.clock(),
            network_op or self._default_operation(),
            self.retry_policy,
            ttl=self.ttl,
            max_entries=self.store.max_entries,
            cache_key=self.cache_key,
            timeout=int(self.config.timeout),
            sleep=self.sleep,
        )

    async def fetch(self, store: CacheLike | None = None) -> Any:
        """Fetch the resource, updating ``store`` and notifying observers.

        Raises:
            The final error when the fetch fails; nothing is cached then.
        """
        active = store if store is not None else self.store
        result = await self.fetch_pure(active.snapshot())
        apply_effects(result, active, self.notifier)
        if result.success:
            return result.data
        assert result.error is not None
        raise result.error


__all__ = ["ResourceFetcher"]
