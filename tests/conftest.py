"""Shared pytest fixtures."""

import pytest

from ibira import CacheStore, EventNotifier, RetryPolicy
from tests.support import FakeClock, RecordingObserver, RecordingSleep


@pytest.fixture
def store() -> CacheStore:
    """Create a fresh CacheStore for each test."""
    return CacheStore(max_entries=10, ttl=60_000)


@pytest.fixture
def notifier() -> EventNotifier:
    return EventNotifier()


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def policy() -> RetryPolicy:
    """Retry policy with deterministic jitter (rand() == 0.5 means no offset)."""
    return RetryPolicy(max_retries=2, base_delay=1000, multiplier=2, rand=lambda: 0.5)
