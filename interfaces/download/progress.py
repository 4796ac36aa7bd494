from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

STAGE_LISTING = "Listing"
STAGE_DOWNLOADING = "Downloading"


@dataclass(frozen=True, slots=True)
class DownloadProgress:
    stage: str
    current_file: Optional[str] = None
    current_file_bytes: Optional[int] = None
    current_file_total_bytes: Optional[int] = None
    total_bytes_downloaded: Optional[int] = None
    total_bytes_to_download: Optional[int] = None

    def overall_fraction(self) -> Optional[float]:
        """Return the aggregate fraction in [0, 1], or None when the total is unknown."""
        if (
            self.total_bytes_downloaded is not None
            and self.total_bytes_to_download is not None
            and self.total_bytes_to_download > 0
        ):
            fraction = self.total_bytes_downloaded / self.total_bytes_to_download
            return min(max(fraction, 0.0), 1.0)
        return None


ProgressSink = Callable[[DownloadProgress], None]
