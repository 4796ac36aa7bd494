from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True, slots=True)
class ModelDescriptor:
    id: str
    name: str
    compute_target: str          # "cpu" | "gpu"
    quantization: str
    min_ram_gb: float
    remote_folder_location: str
    min_vram_gb: Optional[float] = None
    size_gb: float = 0.0

    @property
    def is_gpu(self) -> bool:
        return self.compute_target == "gpu"


@dataclass(frozen=True, slots=True)
class HardwareCapabilities:
    available_ram_gb: float
    available_vram_gb: float = 0.0
