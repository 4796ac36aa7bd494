"""
On-disk layout and atomicity primitives for downloaded models.

Layout:

    <models_root>/<model id>/            one folder per model
        <witness file>                   completeness witness (e.g. model.onnx)
        <engine config>                  required for inference
        ...any other downloaded files
        <name>.download                  in-flight download, never trusted

A folder is *complete* when the witness exists and is non-empty; it is
*ready for inference* when, in addition, the engine config and at least one
weight file exist. Nothing here validates the full tree.
"""
from __future__ import annotations

from pathlib import Path
from typing import AsyncIterator, BinaryIO, Callable, Optional
import asyncio
import logging
import os
import shutil

from app.cancellation import CancellationToken
from app.errors import DownloadError, UnsafePathError
from config.artifact_config import ArtifactConfig

logger = logging.getLogger(__name__)


def try_hard_link(link_path: Path, existing_path: Path) -> bool:
    """Create `link_path` as a hard link to `existing_path`; False when unsupported or refused."""
    if not hasattr(os, "link"):
        return False
    try:
        link_path.unlink(missing_ok=True)
        os.link(existing_path, link_path)
        return True
    except OSError:
        return False


def try_delete_file(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.warning("Could not delete %s", path)


def file_size(path: Path) -> int:
    try:
        return path.stat().st_size if path.is_file() else -1
    except OSError:
        return -1


def _flush_and_sync(fh: BinaryIO) -> None:
    fh.flush()
    os.fsync(fh.fileno())


class ArtifactStore:
    def __init__(self, models_root: Path, cfg: ArtifactConfig) -> None:
        self.models_root = Path(models_root)
        self.cfg = cfg

    # ---------- Paths ----------

    def model_folder(self, model_id: str) -> Path:
        if not isinstance(model_id, str) or not model_id.strip():
            raise ValueError("Model id is required.")
        if "/" in model_id or "\\" in model_id or model_id in {".", ".."}:
            raise ValueError(f"Model id is not a valid folder name: {model_id!r}")
        return self.models_root / model_id

    def witness_path(self, model_id: str) -> Path:
        return self.model_folder(model_id) / self.cfg.witness_filename

    def temp_path_for(self, final_path: Path) -> Path:
        return final_path.with_name(final_path.name + self.cfg.temp_suffix)

    def safe_local_path(self, model_id: str, relative_path: str) -> Path:
        """Map a remote relative path into the model folder, refusing anything that escapes it."""
        folder = self.model_folder(model_id).resolve()
        candidate = (folder / relative_path.replace("\\", "/")).resolve()
        if candidate == folder or folder not in candidate.parents:
            raise UnsafePathError(f"Unsafe path in download list: {relative_path!r}")
        return candidate

    # ---------- Predicates ----------

    def is_complete(self, model_id: str) -> bool:
        try:
            if not self.model_folder(model_id).is_dir():
                return False
            return file_size(self.witness_path(model_id)) > 0
        except (OSError, ValueError):
            return False

    def is_ready_for_inference(self, model_id: str) -> bool:
        try:
            folder = self.model_folder(model_id)
            if not folder.is_dir():
                return False
            if not (folder / self.cfg.engine_config_filename).is_file():
                return False
            if not any(p.is_file() for p in folder.rglob("*" + self.cfg.weight_suffix)):
                return False
            return self.is_complete(model_id)
        except (OSError, ValueError):
            return False

    # ---------- Materialization ----------

    async def write_file_atomically(
        self,
        final_path: Path,
        chunks: AsyncIterator[bytes],
        on_bytes: Optional[Callable[[int], None]],
        token: CancellationToken,
    ) -> int:
        """
        Stream `chunks` into `<final_path>.download`, then promote onto `final_path`.

        The final path is only replaced after the stream is fully consumed and
        the temp file is non-empty. If the stream fails or the token is
        cancelled, the temp file is deleted before the error propagates.
        Returns the number of bytes written.
        """
        final_path = Path(final_path)
        tmp = self.temp_path_for(final_path)
        final_path.parent.mkdir(parents=True, exist_ok=True)
        try_delete_file(tmp)

        written = 0
        try:
            with tmp.open("wb") as fh:
                async for chunk in chunks:
                    token.raise_if_cancelled()
                    if not chunk:
                        continue
                    fh.write(chunk)
                    written += len(chunk)
                    if on_bytes is not None:
                        on_bytes(written)
                token.raise_if_cancelled()
                # Large weight files take seconds to sync; keep it off the event loop
                await asyncio.to_thread(_flush_and_sync, fh)
        except BaseException:
            try_delete_file(tmp)
            raise

        if file_size(tmp) <= 0:
            try_delete_file(tmp)
            raise DownloadError(f"Downloaded file is empty: {final_path.name}")

        # A failed promote leaves the temp file for cleanup_incomplete
        os.replace(tmp, final_path)
        return written

    def ensure_witness(self, model_id: str) -> Path:
        """
        Make sure the witness file exists once every file has been materialized.

        If a file with the witness name was downloaded, nothing happens.
        Otherwise the largest weight file is hard-linked (or copied) under the
        witness name; the source file stays in place since engine configs may
        reference it by name.
        """
        folder = self.model_folder(model_id)
        witness = self.witness_path(model_id)

        if witness.exists():
            if file_size(witness) > 0:
                return witness
            try_delete_file(witness)

        candidates = [
            p for p in folder.rglob("*" + self.cfg.weight_suffix)
            if p.is_file() and p != witness and file_size(p) > 0
        ]
        if not candidates:
            raise DownloadError(f"No {self.cfg.weight_suffix} weight file was downloaded for {model_id}.")

        # Largest first; path order breaks ties deterministically
        candidates.sort(key=lambda p: str(p))
        primary = max(candidates, key=file_size)

        if not try_hard_link(witness, primary):
            logger.info("Hard link unavailable, copying %s to %s", primary.name, witness.name)
            shutil.copyfile(primary, witness)

        if file_size(witness) <= 0:
            raise DownloadError(f"Witness file is missing or empty after finalization: {witness}")
        return witness

    # ---------- Cleanup ----------

    def _temp_files(self, folder: Path) -> list[Path]:
        return [p for p in folder.rglob("*" + self.cfg.temp_suffix) if p.is_file()]

    @staticmethod
    def _prune_empty_dirs(root: Path) -> None:
        # Deepest first so parents empty out before they are checked
        dirs = sorted((p for p in root.rglob("*") if p.is_dir()), key=lambda p: len(p.parts), reverse=True)
        for d in dirs:
            try:
                if not any(d.iterdir()):
                    d.rmdir()
            except OSError:
                continue

    def remove_temp_files(self, model_id: str) -> None:
        """Drop stray `.download` files and empty sub-folders. Never raises."""
        try:
            folder = self.model_folder(model_id)
            if not folder.is_dir():
                return
            for f in self._temp_files(folder):
                try_delete_file(f)
            self._prune_empty_dirs(folder)
        except (OSError, ValueError):
            logger.warning("Temp file cleanup failed for %s", model_id, exc_info=True)

    def cleanup_incomplete(self, model_id: str) -> None:
        """
        Remove partial state. Never raises.

        Temp files go first; then an incomplete folder is deleted wholesale,
        while a complete one only loses its empty sub-folders.
        """
        try:
            folder = self.model_folder(model_id)
            if not folder.is_dir():
                return
            for f in self._temp_files(folder):
                try_delete_file(f)
            if not self.is_complete(model_id):
                shutil.rmtree(folder, ignore_errors=True)
                logger.info("Removed incomplete model folder %s", folder)
                return
            self._prune_empty_dirs(folder)
        except (OSError, ValueError):
            logger.warning("Cleanup failed for %s", model_id, exc_info=True)

    def delete_model(self, model_id: str) -> None:
        """Delete the whole model folder, complete or not. Never raises."""
        try:
            folder = self.model_folder(model_id)
            if folder.exists():
                shutil.rmtree(folder, ignore_errors=True)
                logger.info("Deleted model folder %s", folder)
        except (OSError, ValueError):
            logger.warning("Could not delete model folder for %s", model_id, exc_info=True)
