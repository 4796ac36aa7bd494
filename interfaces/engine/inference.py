from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from app.cancellation import CancellationToken


@dataclass(frozen=True, slots=True)
class SamplingOptions:
    do_sample: bool = False
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None


class InferenceEngine(Protocol):
    @property
    def is_loaded(self) -> bool:
        ...

    async def load_model(self, folder: Path, token: "CancellationToken") -> None:
        ...

    async def warmup(self, token: "CancellationToken") -> None:
        ...

    async def generate(
        self,
        prompt: str,
        max_length: int,
        sampling: SamplingOptions,
        on_chunk: Optional[Callable[[str], None]],
        token: "CancellationToken",
    ) -> str:
        ...

    def estimate_token_count(self, text: str) -> int:
        """Approximate; may return 0 when no tokenizer is loaded."""
        ...

    def unload(self) -> None:
        ...
