"""Tests for observable state and cancellation tokens."""
from dataclasses import dataclass

import pytest

from app.cancellation import CancellationToken, OperationCancelledError
from app.observable import ObservableState


@dataclass(frozen=True)
class _Status:
    state: str = "idle"
    percent: float = 0.0


def test_update_publishes_new_snapshot():
    store = ObservableState(_Status())
    seen = []
    store.subscribe(seen.append)

    result = store.update(state="downloading", percent=12.5)

    assert result == _Status("downloading", 12.5)
    assert store.value == result
    assert seen == [result]


def test_unsubscribe_stops_notifications():
    store = ObservableState(_Status())
    seen = []
    unsubscribe = store.subscribe(seen.append)
    unsubscribe()
    unsubscribe()
    store.update(state="ready")
    assert seen == []


def test_failing_subscriber_does_not_block_others():
    store = ObservableState(_Status())
    seen = []

    def _broken(_):
        raise RuntimeError("ui closed")

    store.subscribe(_broken)
    store.subscribe(seen.append)
    store.set(_Status("failed"))
    assert seen == [_Status("failed")]


def test_token_cancel():
    token = CancellationToken()
    token.raise_if_cancelled()
    assert not token.is_cancelled

    token.cancel()
    token.cancel()
    assert token.is_cancelled
    with pytest.raises(OperationCancelledError):
        token.raise_if_cancelled()
