from __future__ import annotations

import logging

import psutil
import torch

from interfaces.hardware.provider import HardwareInfo

logger = logging.getLogger(__name__)

_GIB = 1024 ** 3


def _round_gb(num_bytes: int) -> float:
    # Nearest whole GiB
    return float(round(num_bytes / _GIB))


class LocalHardwareInfoProvider:
    """Probe total RAM (psutil) and the largest CUDA device's VRAM (torch). Never raises."""

    def _probe_ram(self) -> tuple[int, bool]:
        try:
            return int(psutil.virtual_memory().total), True
        except Exception:
            logger.warning("RAM detection failed", exc_info=True)
            return 0, False

    def _probe_vram(self) -> tuple[int, bool, bool]:
        try:
            if not torch.cuda.is_available():
                return 0, False, False
            best = 0
            for idx in range(torch.cuda.device_count()):
                best = max(best, int(torch.cuda.get_device_properties(idx).total_memory))
            return best, best > 0, best > 0
        except Exception:
            logger.warning("VRAM detection failed", exc_info=True)
            return 0, False, False

    def get_hardware_info(self) -> HardwareInfo:
        ram_bytes, ram_known = self._probe_ram()
        vram_bytes, has_gpu, vram_known = self._probe_vram()
        info = HardwareInfo(
            ram_bytes=ram_bytes,
            ram_gb=_round_gb(ram_bytes) if ram_known else 0.0,
            is_ram_known=ram_known,
            has_discrete_gpu=has_gpu,
            vram_bytes=vram_bytes,
            vram_gb=_round_gb(vram_bytes) if vram_known else 0.0,
            is_vram_known=vram_known,
        )
        logger.info("Hardware detected: %s", info.summary)
        return info
