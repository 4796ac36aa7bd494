from __future__ import annotations

import threading


class OperationCancelledError(Exception):
    """Raised at a suspension point once the operation's token has been cancelled."""


class CancellationToken:
    """
    Cooperative cancellation signal scoped to one operation.

    Thread-safe: the engine checks it from worker threads while the
    event loop checks it between download chunks.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError("Operation was cancelled.")
