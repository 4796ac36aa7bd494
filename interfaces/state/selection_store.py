from __future__ import annotations

from typing import Optional, Protocol


class SelectionStateStore(Protocol):
    def try_load(self) -> tuple[Optional[str], bool]:
        ...

    def save(self, model_id: str) -> None:
        ...

    def clear(self) -> None:
        ...
