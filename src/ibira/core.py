"""Pure fetch computation.

:func:`compute_fetch` decides what a fetch should do without doing it:
- reads an explicit cache snapshot taken at ``now``
- calls the network operation under the retry policy on a miss
- returns a frozen :class:`~ibira.types.FetchResult` listing cache
  operations and lifecycle events for :mod:`ibira.effects` to apply

Nothing here touches a live store or notifier.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from types import MappingProxyType
from typing import Any

from ibira.cache import compute_evictions, compute_expired_keys
from ibira.errors import FetchTimeoutError
from ibira.observability import get_logger
from ibira.retry import RetryPolicy
from ibira.types import (
    CacheEntry,
    CacheOp,
    DeleteOp,
    Error,
    Event,
    FetchMeta,
    FetchResult,
    LoadingStart,
    NetworkOperation,
    Retry,
    SetOp,
    Success,
    UpdateOp,
)

logger = get_logger("ibira.core")

Sleep = Callable[[float], Awaitable[Any]]


async def run_attempt(network_op: NetworkOperation, timeout: int | None) -> Any:
    """Run one network attempt, cancelling it after ``timeout`` ms."""
    if timeout is None:
        return await network_op()
    try:
        return await asyncio.wait_for(network_op(), timeout / 1000)
    except asyncio.TimeoutError as e:
        raise FetchTimeoutError(timeout) from e


async def compute_fetch(
    cache_snapshot: Mapping[str, CacheEntry[Any]],
    resource_id: str,
    now: int,
    network_op: NetworkOperation,
    retry_policy: RetryPolicy,
    *,
    ttl: int,
    max_entries: int,
    cache_key: str | None = None,
    timeout: int | None = None,
    sleep: Sleep = asyncio.sleep,
) -> FetchResult[Any]:
    """Compute the outcome of fetching ``resource_id`` at time ``now``.

    Args:
        cache_snapshot: Cache contents to reason about (never mutated)
        resource_id: Identifier reported in the loading event
        now: Current time in Unix ms
        network_op: Zero-argument coroutine function producing the data
        retry_policy: Retry classification and backoff
        ttl: Lifetime of a new entry in ms
        max_entries: Size bound applied to the resulting cache state
        cache_key: Key under which the data is cached (default: resource_id)
        timeout: Per-attempt timeout in ms, or None for no limit
        sleep: Awaitable used for backoff delays (seconds)

    Returns:
        A frozen result describing data or error, cache operations and events
    """
    key = cache_key if cache_key is not None else resource_id

    expired_keys = compute_expired_keys(cache_snapshot, now)
    expired = set(expired_keys)
    cleaned = {k: v for k, v in cache_snapshot.items() if k not in expired}

    cached = cleaned.get(key)
    if cached is not None and not cached.is_expired(now):
        refreshed = cached.refreshed(now)
        new_state = dict(cleaned)
        new_state[key] = refreshed
        logger.debug("Cache hit for %s", key)
        return FetchResult(
            success=True,
            data=cached.data,
            from_cache=True,
            cache_operations=(UpdateOp(key=key, entry=refreshed),),
            events=(),
            new_cache_state=MappingProxyType(new_state),
            meta=FetchMeta(
                cache_key=key,
                timestamp=now,
                expired_keys_removed=len(expired_keys),
            ),
        )

    events: list[Event] = [LoadingStart(resource_id=resource_id, cache_key=key)]
    max_attempts = retry_policy.max_attempts
    last_error: Exception | None = None
    attempts = 0

    for attempt in range(max_attempts):
        attempts = attempt + 1
        try:
            data = await run_attempt(network_op, timeout)
        except Exception as e:
            last_error = e
            if not retry_policy.should_retry(e, attempt):
                break
            delay = retry_policy.compute_delay(attempt)
            events.append(
                Retry(
                    attempt=attempts,
                    max_attempts=max_attempts,
                    error=e,
                    retry_in_ms=delay,
                )
            )
            logger.warning(
                "Attempt %d/%d for %s failed (%s), retrying in %dms",
                attempts,
                max_attempts,
                key,
                e,
                delay,
            )
            await sleep(delay / 1000)
            continue

        entry: CacheEntry[Any] = CacheEntry(
            data=data, written_at=now, expires_at=now + ttl
        )
        with_entry = dict(cleaned)
        with_entry[key] = entry
        evicted = compute_evictions(with_entry, max_entries)
        dropped = set(evicted)
        final_state = {k: v for k, v in with_entry.items() if k not in dropped}

        operations: list[CacheOp] = [SetOp(key=key, entry=entry)]
        operations.extend(DeleteOp(key=k, entry=with_entry[k]) for k in evicted)
        events.append(Success(data=data))

        return FetchResult(
            success=True,
            data=data,
            from_cache=False,
            cache_operations=tuple(operations),
            events=tuple(events),
            new_cache_state=MappingProxyType(final_state),
            meta=FetchMeta(
                cache_key=key,
                timestamp=now,
                expired_keys_removed=len(expired_keys),
                attempts=attempts,
                network_request=True,
            ),
        )

    assert last_error is not None
    logger.warning(
        "Fetch for %s failed after %d attempt(s): %s", key, attempts, last_error
    )
    events.append(Error(error=last_error, attempts=attempts, max_attempts=max_attempts))
    return FetchResult(
        success=False,
        error=last_error,
        from_cache=False,
        cache_operations=(),
        events=tuple(events),
        new_cache_state=MappingProxyType(cleaned),
        meta=FetchMeta(
            cache_key=key,
            timestamp=now,
            expired_keys_removed=len(expired_keys),
            attempts=attempts,
            network_request=True,
        ),
    )


__all__ = ["compute_fetch", "run_attempt"]
