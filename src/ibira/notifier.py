"""Observer registry for fetch lifecycle events."""

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Observer(Protocol):
    """Anything with an ``update(event_type, payload)`` method."""

    def update(self, event_type: str, payload: Any) -> None: ...


@runtime_checkable
class Notifier(Protocol):
    """Interface shared by every notifier."""

    def subscribe(self, observer: Observer) -> None: ...

    def unsubscribe(self, observer: Observer) -> None: ...

    def notify(self, *args: Any) -> None: ...

    def clear(self) -> None: ...

    @property
    def subscriber_count(self) -> int: ...


class EventNotifier:
    """Broadcasts events to subscribers in subscription order.

    Subscribers are matched by identity. Subscribing the same observer twice
    delivers every event to it twice, and it takes two ``unsubscribe`` calls
    to detach it. An exception raised by a subscriber propagates out of
    :meth:`notify` and later subscribers are not called.
    """

    def __init__(self) -> None:
        self._observers: tuple[Any, ...] = ()

    def subscribe(self, observer: Observer | None) -> None:
        if observer is None:
            return
        self._observers = (*self._observers, observer)

    def unsubscribe(self, observer: Observer | None) -> None:
        """Remove the earliest subscription of ``observer``, if any."""
        for index, existing in enumerate(self._observers):
            if existing is observer:
                self._observers = self._observers[:index] + self._observers[index + 1 :]
                return

    def notify(self, *args: Any) -> None:
        # Iterate a snapshot so handlers may (un)subscribe during dispatch
        for observer in self._observers:
            update = getattr(observer, "update", None)
            if callable(update):
                update(*args)

    def clear(self) -> None:
        self._observers = ()

    @property
    def subscriber_count(self) -> int:
        return len(self._observers)

    @property
    def observers(self) -> tuple[Any, ...]:
        return self._observers


class CallbackNotifier:
    """Routes every event to a single callback; subscriptions are ignored."""

    def __init__(self, callback: Callable[..., Any]) -> None:
        self._callback = callback

    def subscribe(self, observer: Observer | None) -> None:
        pass

    def unsubscribe(self, observer: Observer | None) -> None:
        pass

    def notify(self, *args: Any) -> None:
        self._callback(*args)

    def clear(self) -> None:
        pass

    @property
    def subscriber_count(self) -> int:
        return 1


class SilentNotifier:
    """Discards every event."""

    def subscribe(self, observer: Observer | None) -> None:
        pass

    def unsubscribe(self, observer: Observer | None) -> None:
        pass

    def notify(self, *args: Any) -> None:
        pass

    def clear(self) -> None:
        pass

    @property
    def subscriber_count(self) -> int:
        return 0


__all__ = [
    "CallbackNotifier",
    "EventNotifier",
    "Notifier",
    "Observer",
    "SilentNotifier",
]
