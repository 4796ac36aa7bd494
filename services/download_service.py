from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
import asyncio
import logging

from app.cancellation import CancellationToken, OperationCancelledError
from app.errors import DownloadError
from interfaces.download.progress import (
    STAGE_DOWNLOADING,
    STAGE_LISTING,
    DownloadProgress,
    ProgressSink,
)
from interfaces.download.remote import RemoteFileEntry
from interfaces.model.descriptor import ModelDescriptor
from services.artifact_store import ArtifactStore, file_size, try_delete_file
from services.remote_tree import RemoteTreeClient

logger = logging.getLogger(__name__)


@dataclass
class DownloadOrchestrator:
    """
    Materializes every file of a model folder, one file at a time.

    A call either leaves a complete model on disk and returns True, or cleans
    up whatever it wrote and returns False. Single caller assumed: concurrent
    calls for the same model id are not deduplicated.
    """
    remote: RemoteTreeClient
    artifacts: ArtifactStore

    @staticmethod
    def _report(sink: Optional[ProgressSink], progress: DownloadProgress) -> None:
        if sink is None:
            return
        try:
            sink(progress)
        except Exception:
            logger.exception("Progress sink failed")

    def _discard_partial(self, model_id: str) -> None:
        # A partially re-downloaded tree must never look complete, even if the
        # witness file itself already arrived.
        try:
            try_delete_file(self.artifacts.witness_path(model_id))
        except ValueError:
            return
        self.artifacts.cleanup_incomplete(model_id)

    async def ensure_downloaded(
        self,
        model: ModelDescriptor,
        progress_sink: Optional[ProgressSink],
        token: CancellationToken,
    ) -> bool:
        if self.artifacts.is_ready_for_inference(model.id):
            self.artifacts.remove_temp_files(model.id)
            logger.info("Model already present, skipping download (id %s)", model.id)
            return True

        logger.info("Download started (id %s)", model.id)
        try:
            await self._download_all(model, progress_sink, token)
        except (OperationCancelledError, asyncio.CancelledError) as exc:
            logger.warning("Download cancelled (id %s)", model.id)
            self._discard_partial(model.id)
            if isinstance(exc, asyncio.CancelledError):
                raise
            return False
        except Exception:
            logger.exception("Download failed (id %s)", model.id)
            self._discard_partial(model.id)
            return False

        logger.info("Download completed successfully (id %s)", model.id)
        return True

    async def _download_all(
        self,
        model: ModelDescriptor,
        sink: Optional[ProgressSink],
        token: CancellationToken,
    ) -> None:
        self.artifacts.model_folder(model.id).mkdir(parents=True, exist_ok=True)

        self._report(sink, DownloadProgress(stage=STAGE_LISTING))
        files = await self.remote.list_files(model.remote_folder_location, token)
        if not files:
            raise DownloadError("No downloadable files were discovered for the selected model.")

        # Progress is only determinate when every entry reports a size
        total: Optional[int] = None
        if all(f.size_bytes is not None for f in files):
            total = sum(f.size_bytes for f in files)  # type: ignore[misc]

        downloaded = 0
        for entry in files:
            token.raise_if_cancelled()
            downloaded += await self._download_one(model, entry, sink, total, downloaded, token)

        self.artifacts.ensure_witness(model.id)

    async def _download_one(
        self,
        model: ModelDescriptor,
        entry: RemoteFileEntry,
        sink: Optional[ProgressSink],
        total: Optional[int],
        downloaded_before: int,
        token: CancellationToken,
    ) -> int:
        local_path = self.artifacts.safe_local_path(model.id, entry.relative_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)

        # Always re-download: a folder that is not ready is not trusted
        try_delete_file(self.artifacts.temp_path_for(local_path))
        try_delete_file(local_path)

        url = self.remote.resolve_download_location(entry.repo_id, entry.revision, entry.path_in_repo)

        self._report(
            sink,
            DownloadProgress(
                stage=STAGE_DOWNLOADING,
                current_file=entry.relative_path,
                current_file_bytes=0,
                current_file_total_bytes=entry.size_bytes,
                total_bytes_downloaded=downloaded_before,
                total_bytes_to_download=total,
            ),
        )

        async with self.remote.stream_file(url, token) as stream:
            file_total = entry.size_bytes if entry.size_bytes is not None else stream.content_length

            def _on_bytes(n: int) -> None:
                self._report(
                    sink,
                    DownloadProgress(
                        stage=STAGE_DOWNLOADING,
                        current_file=entry.relative_path,
                        current_file_bytes=n,
                        current_file_total_bytes=file_total,
                        total_bytes_downloaded=downloaded_before + n,
                        total_bytes_to_download=total,
                    ),
                )

            written = await self.artifacts.write_file_atomically(
                local_path, stream.iter_chunks(), _on_bytes, token
            )

        if file_size(local_path) <= 0:
            raise DownloadError(f"Downloaded file is missing or empty: {entry.relative_path}")
        logger.info("Downloaded %s (%d bytes)", entry.relative_path, written)
        return written
