from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True, slots=True)
class TreeLocation:
    repo_id: str
    revision: str
    base_path: str


@dataclass(frozen=True, slots=True)
class RemoteFileEntry:
    repo_id: str
    revision: str
    path_in_repo: str
    relative_path: str
    size_bytes: Optional[int] = None
