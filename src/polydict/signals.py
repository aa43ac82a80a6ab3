"""Observable state values (loading flag, search progress).

An ``ObservableValue`` holds the latest value for polling and notifies
subscribers synchronously whenever it changes. Values are set from the event
loop thread only; worker threads marshal updates with
``loop.call_soon_threadsafe``.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Generic, TypeVar

import structlog

log = structlog.get_logger()

T = TypeVar("T")


class ObservableValue(Generic[T]):
    def __init__(self, initial: T) -> None:
        self._value = initial
        self._subscribers: list[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        """Store ``value`` and notify subscribers if it differs from the current one."""
        if value == self._value:
            return
        self._value = value
        for callback in list(self._subscribers):
            try:
                callback(value)
            except Exception:
                # A broken subscriber must not stop the publisher.
                log.error("signal_subscriber_error", callback=repr(callback), exc_info=True)

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register ``callback`` and return a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe
