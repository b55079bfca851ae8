"""Test doubles shared across test modules."""

from collections.abc import Awaitable, Callable
from typing import Any


class RecordingObserver:
    """Observer that records every (event_type, payload) it receives."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    def update(self, event_type: str, payload: Any) -> None:
        self.events.append((event_type, payload))

    @property
    def event_types(self) -> list[str]:
        return [event_type for event_type, _ in self.events]


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays and returns at once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: int = 1_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def counting_operation(
    result: Any = None, *, errors: list[BaseException] | None = None
) -> tuple[Callable[[], Awaitable[Any]], list[int]]:
    """Network operation that raises queued errors first, then returns result.

    Returns the operation and a one-element list holding the call count.
    """
    pending = list(errors or [])
    calls = [0]

    async def operation() -> Any:
        calls[0] += 1
        if pending:
            raise pending.pop(0)
        return result

    return operation, calls
