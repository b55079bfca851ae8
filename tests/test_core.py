"""Tests for the pure fetch computation."""

import asyncio
from typing import Any

import pytest

from ibira import (
    CacheEntry,
    DecodingError,
    DeleteOp,
    Error,
    FetchTimeoutError,
    HttpStatusError,
    LoadingStart,
    Retry,
    RetryPolicy,
    SetOp,
    Success,
    UpdateOp,
    compute_fetch,
)
from tests.support import RecordingSleep, counting_operation

NOW = 10_000
TTL = 5_000


def entry(data: Any, written_at: int, expires_at: int) -> CacheEntry[Any]:
    return CacheEntry(data=data, written_at=written_at, expires_at=expires_at)


async def run(snapshot, network_op, policy, sleep=None, **kwargs):
    return await compute_fetch(
        snapshot,
        kwargs.pop("resource_id", "res"),
        kwargs.pop("now", NOW),
        network_op,
        policy,
        ttl=kwargs.pop("ttl", TTL),
        max_entries=kwargs.pop("max_entries", 10),
        sleep=sleep or RecordingSleep(),
        **kwargs,
    )


class TestCacheHit:
    """Tests for fresh cached entries."""

    async def test_hit_never_calls_network(self, policy: RetryPolicy) -> None:
        """Test that a cache hit never calls the network."""
        op, calls = counting_operation({"fresh": True})
        snapshot = {"res": entry({"cached": True}, 9_000, NOW + 1)}

        result = await run(snapshot, op, policy)

        assert calls[0] == 0
        assert result.success
        assert result.from_cache
        assert result.data == {"cached": True}
        assert result.events == ()

    async def test_hit_refreshes_write_time(self, policy: RetryPolicy) -> None:
        """Test that a hit plans a refresh without mutating the snapshot."""
        op, _ = counting_operation()
        original = entry("x", 9_000, NOW + 500)
        snapshot = {"res": original}

        result = await run(snapshot, op, policy)

        assert len(result.cache_operations) == 1
        (update,) = result.cache_operations
        assert isinstance(update, UpdateOp)
        assert update.key == "res"
        assert update.entry.written_at == NOW
        assert update.entry.expires_at == original.expires_at
        assert result.new_cache_state["res"].written_at == NOW
        assert snapshot["res"] is original

    async def test_hit_drops_other_expired_keys_from_state(
        self, policy: RetryPolicy
    ) -> None:
        """Test that a hit drops other expired entries from the new state."""
        op, _ = counting_operation()
        snapshot = {
            "old": entry("o", 0, NOW),
            "res": entry("x", 9_000, NOW + 1),
        }

        result = await run(snapshot, op, policy)

        assert "old" not in result.new_cache_state
        assert "old" in snapshot
        assert result.meta.expired_keys_removed == 1
        assert not result.meta.network_request


class TestCacheMiss:
    """Tests for misses served from the network."""

    async def test_miss_fetches_and_sets(self, policy: RetryPolicy) -> None:
        """Test that a miss fetches and plans a write."""
        op, calls = counting_operation({"id": 1})

        result = await run({}, op, policy)

        assert calls[0] == 1
        assert result.success
        assert not result.from_cache
        assert result.data == {"id": 1}
        (set_op,) = result.cache_operations
        assert isinstance(set_op, SetOp)
        assert set_op.entry == CacheEntry(data={"id": 1}, written_at=NOW, expires_at=NOW + TTL)
        assert [type(e) for e in result.events] == [LoadingStart, Success]
        assert result.events[0].payload == {"resource_id": "res", "cache_key": "res"}
        assert result.meta.attempts == 1

    async def test_expired_entry_is_a_miss(self, policy: RetryPolicy) -> None:
        """Test that an expired entry is fetched again."""
        op, calls = counting_operation("fresh")
        snapshot = {"res": entry("stale", 0, NOW - 1)}

        result = await run(snapshot, op, policy)

        assert calls[0] == 1
        assert result.data == "fresh"
        assert result.new_cache_state["res"].expires_at == NOW + TTL

    async def test_entry_expiring_exactly_now_is_a_miss(self, policy: RetryPolicy) -> None:
        """Test that an entry expiring exactly now is fetched again."""
        op, calls = counting_operation("fresh")

        await run({"res": entry("stale", 0, NOW)}, op, policy)

        assert calls[0] == 1

    async def test_miss_evicts_oldest(self, policy: RetryPolicy) -> None:
        """Test that a write over the bound plans evicting the oldest entry."""
        op, _ = counting_operation("new")
        snapshot = {
            "a": entry("a", 100, NOW + 100),
            "b": entry("b", 200, NOW + 100),
        }

        result = await run(snapshot, op, policy, max_entries=2)

        assert result.cache_operations[0] == SetOp(
            key="res", entry=result.new_cache_state["res"]
        )
        assert result.cache_operations[1:] == (DeleteOp(key="a", entry=snapshot["a"]),)
        assert set(result.new_cache_state) == {"b", "res"}
        assert set(snapshot) == {"a", "b"}

    async def test_custom_cache_key(self, policy: RetryPolicy) -> None:
        """Test caching under a key other than the resource id."""
        op, _ = counting_operation("x")

        result = await run({}, op, policy, cache_key="users:1")

        assert result.cache_operations[0].key == "users:1"
        assert result.meta.cache_key == "users:1"

    async def test_result_state_is_read_only(self, policy: RetryPolicy) -> None:
        """Test that the resulting cache state cannot be modified."""
        op, _ = counting_operation("x")

        result = await run({}, op, policy)

        with pytest.raises(TypeError):
            result.new_cache_state["other"] = entry("y", 0, 1)  # type: ignore[index]


class TestRetries:
    """Tests for the retry loop."""

    async def test_always_500_makes_three_calls(self, policy: RetryPolicy) -> None:
        """Test that a persistent 500 exhausts every attempt."""
        errors = [HttpStatusError(500) for _ in range(10)]
        op, calls = counting_operation("never", errors=errors)
        sleep = RecordingSleep()

        result = await run({}, op, policy, sleep=sleep)

        assert calls[0] == 3
        assert not result.success
        assert isinstance(result.error, HttpStatusError)
        assert result.cache_operations == ()
        assert [e.event_type for e in result.events] == [
            "loading-start",
            "retry",
            "retry",
            "error",
        ]
        assert sleep.delays == [1.0, 2.0]

    async def test_recovers_after_transient_failure(self, policy: RetryPolicy) -> None:
        """Test that a transient failure is retried to success."""
        op, calls = counting_operation("ok", errors=[HttpStatusError(503)])

        result = await run({}, op, policy)

        assert calls[0] == 2
        assert result.success
        assert result.meta.attempts == 2
        retry = result.events[1]
        assert isinstance(retry, Retry)
        assert retry.attempt == 1
        assert retry.max_attempts == 3
        assert retry.retry_in_ms == 1000
        assert isinstance(result.events[-1], Success)

    async def test_terminal_error_is_not_retried(self, policy: RetryPolicy) -> None:
        """Test that a terminal status fails at once."""
        op, calls = counting_operation("never", errors=[HttpStatusError(404)])

        result = await run({}, op, policy)

        assert calls[0] == 1
        assert not result.success
        error_event = result.events[-1]
        assert isinstance(error_event, Error)
        assert error_event.attempts == 1
        assert error_event.max_attempts == 3
        assert [e.event_type for e in result.events] == ["loading-start", "error"]

    async def test_decoding_error_is_not_retried(self, policy: RetryPolicy) -> None:
        """Test that a decoding error fails at once."""
        op, calls = counting_operation(errors=[DecodingError("bad json")])

        result = await run({}, op, policy)

        assert calls[0] == 1
        assert isinstance(result.error, DecodingError)

    async def test_zero_retries(self) -> None:
        """Test that zero retries means a single attempt."""
        policy = RetryPolicy(max_retries=0)
        op, calls = counting_operation(errors=[HttpStatusError(500)])

        result = await run({}, op, policy)

        assert calls[0] == 1
        assert not result.success

    async def test_failure_keeps_cleaned_state(self, policy: RetryPolicy) -> None:
        """Test that a failure plans no writes."""
        op, _ = counting_operation(errors=[HttpStatusError(400)])
        snapshot = {
            "old": entry("o", 0, NOW - 5),
            "keep": entry("k", 0, NOW + 5),
        }

        result = await run(snapshot, op, policy)

        assert dict(result.new_cache_state) == {"keep": snapshot["keep"]}

    async def test_timeout_is_retried(self, policy: RetryPolicy) -> None:
        """Test that a timed-out attempt is retried."""
        calls = 0

        async def slow_then_fast() -> str:
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(1)
            return "done"

        result = await run({}, slow_then_fast, policy, timeout=20)

        assert calls == 2
        assert result.success
        assert isinstance(result.events[1].error, FetchTimeoutError)


class TestDeterminism:
    """Identical inputs give structurally equal results."""

    async def test_success_is_deterministic(self, policy: RetryPolicy) -> None:
        """Test that equal inputs give equal successful results."""
        snapshot = {"a": entry("a", 100, NOW + 100)}

        async def op() -> dict:
            return {"v": 1}

        first = await run(snapshot, op, policy, max_entries=1)
        second = await run(snapshot, op, policy, max_entries=1)

        assert first is not second
        assert first.success == second.success
        assert first.data == second.data
        assert first.cache_operations == second.cache_operations
        assert first.events == second.events
        assert dict(first.new_cache_state) == dict(second.new_cache_state)

    async def test_failure_is_deterministic(self, policy: RetryPolicy) -> None:
        """Test that equal inputs give equal failed results."""
        async def op() -> None:
            raise HttpStatusError(404)

        first = await run({}, op, policy)
        second = await run({}, op, policy)

        assert type(first.error) is type(second.error)
        assert first.cache_operations == second.cache_operations == ()
        assert [e.event_type for e in first.events] == [
            e.event_type for e in second.events
        ]
