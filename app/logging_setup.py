from __future__ import annotations

import logging
import logging.handlers
import queue
import time
from pathlib import Path

DEFAULT_MAX_LOG_BYTES = 1024 * 1024

_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class BoundedFileHandler(logging.Handler):
    """
    Append-only file handler that truncates the file once it grows past `max_bytes`.

    Writes are serialized by the handler lock, so a single instance shared by
    the process acts as the one gate in front of the log file.
    Failures are swallowed: logging must never raise into a caller.
    """

    def __init__(self, path: Path, max_bytes: int = DEFAULT_MAX_LOG_BYTES) -> None:
        super().__init__()
        self.path = Path(path)
        self.max_bytes = max_bytes

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record) + "\n"
            self.path.parent.mkdir(parents=True, exist_ok=True)
            try:
                if self.path.exists() and self.path.stat().st_size > self.max_bytes:
                    self.path.write_bytes(b"")
            except OSError:
                pass
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(line)
        except Exception:
            self.handleError(record)

    def handleError(self, record: logging.LogRecord) -> None:
        # best-effort sink
        return None


def build_formatter() -> logging.Formatter:
    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT)
    formatter.converter = time.gmtime
    return formatter


def configure_logging(
    log_path: Path,
    *,
    max_bytes: int = DEFAULT_MAX_LOG_BYTES,
    level: int = logging.INFO,
) -> logging.handlers.QueueListener:
    """
    Route all logging through a queue to a background writer thread.

    Callers only enqueue records (fire-and-forget); the listener thread owns
    the file. Returns the started listener; the caller stops it on shutdown.
    """
    file_handler = BoundedFileHandler(log_path, max_bytes=max_bytes)
    file_handler.setFormatter(build_formatter())

    log_queue: queue.SimpleQueue = queue.SimpleQueue()
    queue_handler = logging.handlers.QueueHandler(log_queue)

    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing, logging.handlers.QueueHandler):
            root.removeHandler(existing)
    root.addHandler(queue_handler)
    root.setLevel(level)

    listener = logging.handlers.QueueListener(log_queue, file_handler, respect_handler_level=False)
    listener.start()
    return listener
