from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import logging
import os

logger = logging.getLogger(__name__)


@dataclass
class FileSelectionStateStore:
    """
    Persists the selected model id as a single UTF-8 text file.

    Every operation swallows I/O failures and behaves like "no saved state".
    Single-process use only; concurrent writers get last-write-wins.
    """
    path: Path

    def try_load(self) -> tuple[Optional[str], bool]:
        try:
            if not self.path.is_file():
                return None, False
            text = self.path.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError):
            logger.warning("Could not read saved model selection at %s", self.path)
            return None, False
        if not text:
            return None, False
        return text, True

    def save(self, model_id: str) -> None:
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(model_id or "", encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError:
            logger.warning("Could not save model selection to %s", self.path)
            try:
                tmp.unlink(missing_ok=True)
            except OSError:
                pass

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not clear saved model selection at %s", self.path)


@dataclass
class InMemorySelectionStateStore:
    model_id: Optional[str] = None

    def try_load(self) -> tuple[Optional[str], bool]:
        return self.model_id, self.model_id is not None

    def save(self, model_id: str) -> None:
        self.model_id = model_id

    def clear(self) -> None:
        self.model_id = None
