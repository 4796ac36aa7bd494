from __future__ import annotations
from dataclasses import dataclass
from urllib.parse import urlsplit

from huggingface_hub import constants as hf_constants


@dataclass(frozen=True, slots=True)
class DownloadConfig:
    endpoint: str                # e.g. https://huggingface.co
    user_agent: str
    chunk_size: int
    connect_timeout_s: float
    read_timeout_s: float | None  # None = wait indefinitely between chunks
    # Hosts the catalog links may name; listing and downloads always go to `endpoint`
    catalog_hosts: tuple[str, ...] = ("huggingface.co",)

    @property
    def endpoint_host(self) -> str:
        return (urlsplit(self.endpoint).hostname or "").lower()

    def validate(self) -> None:
        parts = urlsplit(self.endpoint)
        if parts.scheme not in {"http", "https"} or not parts.netloc:
            raise ValueError("DownloadConfig.endpoint must be an absolute http(s) URL.")
        if not isinstance(self.user_agent, str) or not self.user_agent.strip():
            raise ValueError("DownloadConfig.user_agent must be a non-empty string.")
        if not isinstance(self.chunk_size, int) or self.chunk_size <= 0:
            raise ValueError("DownloadConfig.chunk_size must be a positive integer.")
        if not isinstance(self.connect_timeout_s, (int, float)) or self.connect_timeout_s <= 0:
            raise ValueError("DownloadConfig.connect_timeout_s must be positive.")
        if self.read_timeout_s is not None and (
            not isinstance(self.read_timeout_s, (int, float)) or self.read_timeout_s <= 0
        ):
            raise ValueError("DownloadConfig.read_timeout_s must be positive or None.")
        if not all(isinstance(h, str) and h.strip() for h in self.catalog_hosts):
            raise ValueError("DownloadConfig.catalog_hosts must be non-empty host names.")

    @staticmethod
    def from_strings(
        endpoint: str | None = None,
        user_agent: str = "OfflineAssistant/1.0",
        chunk_size: int = 128 * 1024,
        connect_timeout_s: float = 30.0,
        read_timeout_s: float | None = 120.0,
        catalog_hosts: tuple[str, ...] = ("huggingface.co",),
    ) -> "DownloadConfig":
        # HF_ENDPOINT is honoured through huggingface_hub's constants
        cfg = DownloadConfig(
            endpoint=(endpoint or hf_constants.ENDPOINT).rstrip("/"),
            user_agent=user_agent,
            chunk_size=chunk_size,
            connect_timeout_s=connect_timeout_s,
            read_timeout_s=read_timeout_s,
            catalog_hosts=tuple(h.strip().lower() for h in catalog_hosts),
        )
        cfg.validate()
        return cfg
