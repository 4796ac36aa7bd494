"""
Hugging Face folder listing and file resolution.

A model's remote location is a browsable folder link:

    https://huggingface.co/{org}/{repo}/tree/{revision}/{path...}

It is turned into a recursive tree-API query; file entries come back sorted
by their path relative to the folder so downloads and progress are stable
across runs.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional
from urllib.parse import quote, unquote, urlsplit
import logging

import httpx
from huggingface_hub.utils import build_hf_headers

from app.cancellation import CancellationToken
from app.errors import DownloadError, RemoteListingError
from config.download_config import DownloadConfig
from interfaces.download.remote import RemoteFileEntry, TreeLocation

logger = logging.getLogger(__name__)

_FILE_TYPES = {"file", "blob"}


def _escape_path(path: str) -> str:
    # Escape each segment, keep the "/" separators
    parts = [p for p in (path or "").split("/") if p]
    return "/".join(quote(p, safe="") for p in parts)


@dataclass
class RemoteStream:
    response: httpx.Response
    chunk_size: int

    @property
    def content_length(self) -> Optional[int]:
        raw = self.response.headers.get("content-length")
        if raw is None or not raw.isdigit():
            return None
        return int(raw)

    def iter_chunks(self) -> AsyncIterator[bytes]:
        return self.response.aiter_bytes(chunk_size=self.chunk_size)


class RemoteTreeClient:
    def __init__(self, cfg: DownloadConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        self.cfg = cfg
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=build_hf_headers(user_agent=self.cfg.user_agent),
                follow_redirects=True,
                timeout=httpx.Timeout(self.cfg.read_timeout_s, connect=self.cfg.connect_timeout_s),
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ---------- URL handling ----------

    def parse_folder_location(self, folder_location: str) -> TreeLocation:
        """Split a folder link into repo id, revision and base path."""
        parts = urlsplit(folder_location or "")
        host = (parts.hostname or "").lower()
        # A mirror endpoint still accepts catalog links naming the public hub
        allowed = {self.cfg.endpoint_host, *self.cfg.catalog_hosts}
        if not host or not any(host == h or host.endswith("." + h) for h in allowed):
            raise RemoteListingError(f"Unsupported model folder host: {folder_location!r}")

        segments = [unquote(s) for s in parts.path.split("/") if s]
        if len(segments) < 4 or segments[2].lower() != "tree":
            raise RemoteListingError(
                f"Model folder must look like {self.cfg.endpoint}/<org>/<repo>/tree/<revision>/<path>: "
                f"{folder_location!r}"
            )

        return TreeLocation(
            repo_id=f"{segments[0]}/{segments[1]}",
            revision=segments[3],
            base_path="/".join(segments[4:]),
        )

    def build_tree_api_url(self, loc: TreeLocation) -> str:
        url = f"{self.cfg.endpoint}/api/models/{_escape_path(loc.repo_id)}/tree/{quote(loc.revision, safe='')}"
        base = _escape_path(loc.base_path)
        if base:
            url += "/" + base
        return url + "?recursive=true&expand=true"

    def resolve_download_location(self, repo_id: str, revision: str, path_in_repo: str) -> str:
        if not repo_id or not repo_id.strip("/"):
            raise ValueError("Repo id is required.")
        if not revision or not revision.strip():
            raise ValueError("Revision is required.")
        if not path_in_repo or not path_in_repo.strip("/"):
            raise ValueError("Path is required.")
        return (
            f"{self.cfg.endpoint}/{_escape_path(repo_id)}/resolve/"
            f"{quote(revision, safe='')}/{_escape_path(path_in_repo)}"
        )

    # ---------- Listing ----------

    @staticmethod
    def _relative_path(base_path: str, full_path: str) -> str:
        base = base_path.strip("/")
        if base and full_path.startswith(base + "/"):
            return full_path[len(base) + 1:]
        # Some responses are already relative
        return full_path

    @staticmethod
    def _size_of(item: dict[str, Any]) -> Optional[int]:
        size = item.get("size")
        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            return None
        return size

    async def _get_json(self, url: str, loc: TreeLocation) -> tuple[Any, Optional[str]]:
        try:
            response = await self._get_client().get(url)
        except httpx.HTTPError as exc:
            raise RemoteListingError(f"Tree listing request failed for {loc.repo_id}: {exc}") from exc
        if not response.is_success:
            raise RemoteListingError(
                f"Tree listing for {loc.repo_id}@{loc.revision} returned HTTP {response.status_code}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise RemoteListingError(f"Tree listing for {loc.repo_id} was not valid JSON") from exc
        next_url = response.links.get("next", {}).get("url")
        return payload, next_url

    async def list_files(self, folder_location: str, token: CancellationToken) -> list[RemoteFileEntry]:
        """List every file under the folder, sorted ordinally by relative path."""
        loc = self.parse_folder_location(folder_location)
        url: Optional[str] = self.build_tree_api_url(loc)

        results: list[RemoteFileEntry] = []
        while url:
            token.raise_if_cancelled()
            payload, url = await self._get_json(url, loc)
            if not isinstance(payload, list):
                raise RemoteListingError(f"Tree listing for {loc.repo_id} is not a list")

            for item in payload:
                if not isinstance(item, dict):
                    continue
                item_type = str(item.get("type") or "").lower()
                if item_type not in _FILE_TYPES:
                    continue
                path_in_repo = item.get("path")
                if not isinstance(path_in_repo, str) or not path_in_repo.strip():
                    continue
                results.append(
                    RemoteFileEntry(
                        repo_id=loc.repo_id,
                        revision=loc.revision,
                        path_in_repo=path_in_repo,
                        relative_path=self._relative_path(loc.base_path, path_in_repo),
                        size_bytes=self._size_of(item),
                    )
                )

        token.raise_if_cancelled()
        results.sort(key=lambda e: e.relative_path)
        logger.info("Listed %d files under %s@%s/%s", len(results), loc.repo_id, loc.revision, loc.base_path)
        return results

    # ---------- File streaming ----------

    @asynccontextmanager
    async def stream_file(self, url: str, token: CancellationToken) -> AsyncIterator[RemoteStream]:
        token.raise_if_cancelled()
        async with self._get_client().stream("GET", url) as response:
            if not response.is_success:
                raise DownloadError(f"GET {url} returned HTTP {response.status_code}")
            yield RemoteStream(response=response, chunk_size=self.cfg.chunk_size)
