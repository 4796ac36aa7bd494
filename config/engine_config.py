from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class EngineConfig:
    warmup_prompt: str
    warmup_max_length: int
    chat_max_length: int
    context_token_budget: int
    system_prompt: str
    default_do_sample: bool

    # Phi-style chat template pieces
    system_tag: str = "<|system|>"
    user_tag: str = "<|user|>"
    assistant_tag: str = "<|assistant|>"
    end_tag: str = "<|end|>"

    def validate(self) -> None:
        if not isinstance(self.warmup_prompt, str) or not self.warmup_prompt.strip():
            raise ValueError("EngineConfig.warmup_prompt must be a non-empty string.")
        if not isinstance(self.warmup_max_length, int) or self.warmup_max_length <= 0:
            raise ValueError("EngineConfig.warmup_max_length must be a positive integer.")
        if not isinstance(self.chat_max_length, int) or self.chat_max_length <= 0:
            raise ValueError("EngineConfig.chat_max_length must be a positive integer.")
        if not isinstance(self.context_token_budget, int) or self.context_token_budget <= 0:
            raise ValueError("EngineConfig.context_token_budget must be a positive integer.")
        if self.context_token_budget >= self.chat_max_length:
            raise ValueError("EngineConfig.context_token_budget must leave room for the reply.")
        if not isinstance(self.system_prompt, str):
            raise ValueError("EngineConfig.system_prompt must be a string.")
        if not isinstance(self.default_do_sample, bool):
            raise ValueError("EngineConfig.default_do_sample must be a bool.")

    @staticmethod
    def from_strings(
        warmup_prompt: str = "<|user|>Hello<|end|><|assistant|>",
        warmup_max_length: int = 64,
        chat_max_length: int = 4096,
        context_token_budget: int = 3072,
        system_prompt: str = "You are a helpful assistant running fully offline.",
        default_do_sample: bool = False,
    ) -> "EngineConfig":
        cfg = EngineConfig(
            warmup_prompt=warmup_prompt,
            warmup_max_length=warmup_max_length,
            chat_max_length=chat_max_length,
            context_token_budget=context_token_budget,
            system_prompt=system_prompt,
            default_do_sample=default_do_sample,
        )
        cfg.validate()
        return cfg
