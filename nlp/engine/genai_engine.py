from __future__ import annotations

from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Optional
import asyncio
import logging
import threading

from app.cancellation import CancellationToken
from app.errors import EngineError
from config.engine_config import EngineConfig
from interfaces.engine.inference import SamplingOptions

logger = logging.getLogger(__name__)


class GenAiRuntime:
    """
    Process-wide handle on the ONNX Runtime GenAI native library.

    Imported lazily on first use so the app can start (and report a clean
    error) on machines missing the native prerequisites. `shutdown()` is the
    single teardown point.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._module: Optional[ModuleType] = None

    def acquire(self) -> ModuleType:
        if self._module is not None:
            return self._module
        with self._lock:
            if self._module is None:
                try:
                    import onnxruntime_genai as og
                except Exception as exc:
                    raise EngineError(f"ONNX Runtime GenAI is unavailable: {exc}") from exc
                self._module = og
                logger.info("ONNX Runtime GenAI runtime initialized")
            return self._module

    def shutdown(self) -> None:
        with self._lock:
            if self._module is not None:
                logger.info("ONNX Runtime GenAI runtime released")
            self._module = None


RUNTIME = GenAiRuntime()


def shutdown_runtime() -> None:
    RUNTIME.shutdown()


class GenAiInferenceEngine:
    def __init__(self, cfg: EngineConfig, runtime: GenAiRuntime = RUNTIME) -> None:
        self.cfg = cfg
        self._runtime = runtime
        self._model: Any = None
        self._tokenizer: Any = None

    @property
    def is_loaded(self) -> bool:
        return self._model is not None and self._tokenizer is not None

    def unload(self) -> None:
        self._tokenizer = None
        self._model = None

    async def load_model(self, folder: Path, token: CancellationToken) -> None:
        token.raise_if_cancelled()
        og = self._runtime.acquire()
        self.unload()

        def _load() -> tuple[Any, Any]:
            model = og.Model(str(folder))
            return model, og.Tokenizer(model)

        try:
            model, tokenizer = await asyncio.to_thread(_load)
        except Exception as exc:
            raise EngineError(f"Failed to load model from {folder}: {exc}") from exc

        # The native load cannot be interrupted; honour a cancel that arrived meanwhile
        token.raise_if_cancelled()
        self._model, self._tokenizer = model, tokenizer
        logger.info("Model loaded from %s", folder)

    async def warmup(self, token: CancellationToken) -> None:
        await self.generate(
            self.cfg.warmup_prompt,
            self.cfg.warmup_max_length,
            SamplingOptions(do_sample=False),
            None,
            token,
        )

    def _search_options(self, max_length: int, sampling: SamplingOptions) -> dict[str, Any]:
        options: dict[str, Any] = {"max_length": max_length, "do_sample": sampling.do_sample}
        if sampling.temperature is not None:
            options["temperature"] = sampling.temperature
        if sampling.top_p is not None:
            options["top_p"] = sampling.top_p
        if sampling.top_k is not None:
            options["top_k"] = sampling.top_k
        return options

    def _generate_sync(
        self,
        prompt: str,
        max_length: int,
        sampling: SamplingOptions,
        emit: Callable[[str], None],
        token: CancellationToken,
    ) -> str:
        og = self._runtime.acquire()
        tokens = self._tokenizer.encode(prompt)
        stream = self._tokenizer.create_stream()

        params = og.GeneratorParams(self._model)
        params.set_search_options(**self._search_options(max_length, sampling))
        generator = og.Generator(self._model, params)
        generator.append_tokens(tokens)

        pieces: list[str] = []
        while not generator.is_done():
            token.raise_if_cancelled()
            generator.generate_next_token()
            text = stream.decode(generator.get_next_tokens()[0])
            if text:
                pieces.append(text)
                emit(text)
        return "".join(pieces)

    async def generate(
        self,
        prompt: str,
        max_length: int,
        sampling: SamplingOptions,
        on_chunk: Optional[Callable[[str], None]],
        token: CancellationToken,
    ) -> str:
        if not self.is_loaded:
            raise EngineError("Model is not loaded.")
        if prompt is None:
            raise ValueError("prompt is required")
        token.raise_if_cancelled()

        loop = asyncio.get_running_loop()

        def _emit(text: str) -> None:
            # Chunks are produced on a worker thread; deliver them on the loop
            if on_chunk is not None:
                loop.call_soon_threadsafe(on_chunk, text)

        try:
            return await asyncio.to_thread(self._generate_sync, prompt, max_length, sampling, _emit, token)
        except (EngineError, ValueError):
            raise
        except Exception as exc:
            if token.is_cancelled:
                raise
            raise EngineError(f"Generation failed: {exc}") from exc

    def estimate_token_count(self, text: str) -> int:
        """Token count of `text`; 0 when no tokenizer is loaded or encoding fails."""
        if self._tokenizer is None or not text:
            return 0
        try:
            return len(self._tokenizer.encode(text))
        except Exception:
            logger.debug("Token count estimation failed", exc_info=True)
            return 0
