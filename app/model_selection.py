from __future__ import annotations

from typing import Optional, Sequence

from interfaces.hardware.provider import HardwareInfo
from interfaces.model.descriptor import HardwareCapabilities, ModelDescriptor


def capabilities_from_hardware(info: HardwareInfo) -> HardwareCapabilities:
    """Reduce probed hardware to the two numbers selection cares about (0 when unknown)."""
    return HardwareCapabilities(
        available_ram_gb=info.ram_gb if info.is_ram_known else 0.0,
        available_vram_gb=info.vram_gb if info.is_vram_known else 0.0,
    )


def fits_model(model: ModelDescriptor, caps: HardwareCapabilities) -> bool:
    """Return True if the model fits available RAM/VRAM constraints."""
    if model.min_ram_gb > caps.available_ram_gb:
        return False
    if model.min_vram_gb is not None and model.min_vram_gb > caps.available_vram_gb:
        return False
    return True


def _rank_key(model: ModelDescriptor) -> tuple[float, float, float]:
    return (model.min_vram_gb or 0.0, model.min_ram_gb, model.size_gb)


def choose_best_model(
    caps: HardwareCapabilities,
    models: Sequence[ModelDescriptor],
) -> Optional[ModelDescriptor]:
    """
    Pick the most demanding model that still fits the hardware.

    Rank by (min VRAM, min RAM, size) descending. Only a strictly greater key
    replaces the current best, so on a full tie the first model in catalog
    order wins. Returns None when nothing fits. No side effects.
    """
    best: Optional[ModelDescriptor] = None
    for model in models:
        if not fits_model(model, caps):
            continue
        if best is None or _rank_key(model) > _rank_key(best):
            best = model
    return best


def select_model(
    caps: HardwareCapabilities,
    models: Sequence[ModelDescriptor],
    forced_model_id: Optional[str] = None,
) -> Optional[ModelDescriptor]:
    """
    Apply the selection policy.

    A forced model id short-circuits hardware ranking when the catalog
    contains it; otherwise the hardware fit decides.
    """
    if forced_model_id:
        forced = next((m for m in models if m.id == forced_model_id), None)
        if forced is not None:
            return forced
    return choose_best_model(caps, models)
