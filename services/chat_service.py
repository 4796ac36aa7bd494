from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Sequence
import asyncio
import logging

from app.cancellation import CancellationToken, OperationCancelledError
from app.errors import EngineError
from app.observable import ObservableState
from config.engine_config import EngineConfig
from interfaces.engine.inference import InferenceEngine, SamplingOptions

logger = logging.getLogger(__name__)

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"

CANCELLED_MARKER = "[cancelled]"


@dataclass(frozen=True, slots=True)
class ChatMessage:
    role: str
    content: str


class ChatSession:
    """
    One conversation against a loaded engine.

    The transcript is published as an immutable tuple of messages; the
    assistant message of the current turn is replaced as chunks stream in.
    A failed or cancelled turn ends with an inline marker and leaves the
    engine loaded.
    """

    def __init__(
        self,
        engine: InferenceEngine,
        cfg: EngineConfig,
        sampling: Optional[SamplingOptions] = None,
    ) -> None:
        self.engine = engine
        self.cfg = cfg
        self.sampling = sampling or SamplingOptions(do_sample=cfg.default_do_sample)
        self.transcript: ObservableState[tuple[ChatMessage, ...]] = ObservableState(())
        self._token: Optional[CancellationToken] = None

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return self.transcript.value

    @property
    def is_busy(self) -> bool:
        return self._token is not None

    def cancel(self) -> None:
        if self._token is not None:
            self._token.cancel()

    # ---------- Prompt ----------

    def _render(self, message: ChatMessage) -> str:
        tag = self.cfg.user_tag if message.role == ROLE_USER else self.cfg.assistant_tag
        return f"{tag}{message.content}{self.cfg.end_tag}"

    def build_prompt(self, history: Sequence[ChatMessage]) -> str:
        """
        Render the most recent turns that fit the context budget.

        The newest message is always kept, even when it alone exceeds the
        budget. Token counts come from the engine and are approximate.
        """
        head = ""
        if self.cfg.system_prompt:
            head = f"{self.cfg.system_tag}{self.cfg.system_prompt}{self.cfg.end_tag}"
        tail = self.cfg.assistant_tag

        budget = self.cfg.context_token_budget - self.engine.estimate_token_count(head + tail)
        kept: list[str] = []
        used = 0
        for message in reversed(history):
            piece = self._render(message)
            cost = self.engine.estimate_token_count(piece)
            if kept and used + cost > budget:
                break
            kept.append(piece)
            used += cost

        if len(kept) < len(history):
            logger.info("Prompt clipped to the last %d of %d messages", len(kept), len(history))
        return head + "".join(reversed(kept)) + tail

    # ---------- Turns ----------

    def _set_reply(self, content: str) -> None:
        messages = list(self.messages)
        messages[-1] = replace(messages[-1], content=content)
        self.transcript.set(tuple(messages))

    @staticmethod
    def _with_marker(content: str, marker: str) -> str:
        return f"{content}\n{marker}" if content else marker

    async def send(self, user_text: str) -> ChatMessage:
        """Run one turn and return the final assistant message."""
        text = (user_text or "").strip()
        if not text:
            raise ValueError("Message is empty.")
        if self._token is not None:
            raise RuntimeError("A reply is already being generated.")
        if not self.engine.is_loaded:
            raise EngineError("Model is not loaded.")

        token = CancellationToken()
        self._token = token

        history = self.messages + (ChatMessage(ROLE_USER, text),)
        self.transcript.set(history + (ChatMessage(ROLE_ASSISTANT, ""),))
        prompt = self.build_prompt(history)

        pieces: list[str] = []

        def _on_chunk(chunk: str) -> None:
            pieces.append(chunk)
            self._set_reply("".join(pieces))

        try:
            reply = await self.engine.generate(
                prompt, self.cfg.chat_max_length, self.sampling, _on_chunk, token
            )
            self._set_reply("".join(pieces) or reply)
        except (OperationCancelledError, asyncio.CancelledError) as exc:
            logger.info("Generation cancelled")
            self._set_reply(self._with_marker("".join(pieces), CANCELLED_MARKER))
            if isinstance(exc, asyncio.CancelledError):
                raise
        except Exception as exc:
            logger.exception("Generation failed")
            self._set_reply(self._with_marker("".join(pieces), f"[error: {exc}]"))
        finally:
            self._token = None

        return self.messages[-1]
