from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True, slots=True)
class HardwareInfo:
    ram_bytes: int = 0
    ram_gb: float = 0.0
    is_ram_known: bool = False
    has_discrete_gpu: bool = False
    vram_bytes: int = 0
    vram_gb: float = 0.0
    is_vram_known: bool = False

    @property
    def summary(self) -> str:
        ram = f"{self.ram_gb:.0f} GB RAM" if self.is_ram_known else "RAM unknown"
        vram = f"{self.vram_gb:.0f} GB VRAM" if self.is_vram_known else "No known VRAM"
        return f"{ram} | {vram}"


class HardwareInfoProvider(Protocol):
    def get_hardware_info(self) -> HardwareInfo:
        """Must never raise; unknown values are zero with the matching flag unset."""
        ...
