from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Any, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ObservableState(Generic[T]):
    """
    Holds one immutable snapshot and notifies subscribers on every change.

    Snapshots are frozen dataclasses; `update(**changes)` derives the next one
    with `dataclasses.replace`. Subscriber failures are logged and never reach
    the publisher.
    """

    def __init__(self, initial: T) -> None:
        self._value = initial
        self._lock = threading.Lock()
        self._subscribers: list[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def set(self, value: T) -> None:
        with self._lock:
            self._value = value
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(value)
            except Exception:
                logger.exception("State subscriber failed")

    def update(self, **changes: Any) -> T:
        new_value = replace(self._value, **changes)
        self.set(new_value)
        return new_value
