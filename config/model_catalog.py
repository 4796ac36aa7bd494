"""
Versioned model catalog.

The bundled `model_catalog.manifest.json` is the only source of truth for the
models the app can select. Loading is all-or-nothing: any malformed entry
fails the whole catalog, and the caller treats that as a fatal startup error.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlsplit
import json
import logging

from app.errors import CatalogError
from interfaces.model.descriptor import ModelDescriptor

logger = logging.getLogger(__name__)

SUPPORTED_MANIFEST_VERSION = "1.0"
_MANIFEST_RESOURCE = "model_catalog.manifest.json"
_COMPUTE_TARGETS = {"cpu", "gpu"}


@dataclass(frozen=True, slots=True)
class ModelCatalog:
    manifest_version: str
    models: tuple[ModelDescriptor, ...]
    generated_from: str = ""
    generated_on: str = ""

    def find(self, model_id: str) -> Optional[ModelDescriptor]:
        return next((m for m in self.models if m.id == model_id), None)


def _require_str(entry: dict[str, Any], key: str, idx: int) -> str:
    val = entry.get(key)
    if not isinstance(val, str) or not val.strip():
        raise CatalogError(f"Model[{idx}] missing {key}.")
    return val.strip()


def _require_number(entry: dict[str, Any], key: str, idx: int, default: float = 0.0) -> float:
    val = entry.get(key, default)
    if val is None:
        val = default
    if isinstance(val, bool) or not isinstance(val, (int, float)):
        raise CatalogError(f"Model[{idx}] has non-numeric {key}.")
    if val < 0:
        raise CatalogError(f"Model[{idx}] has negative {key}.")
    return float(val)


def _is_absolute_url(url: str) -> bool:
    parts = urlsplit(url)
    return bool(parts.scheme) and bool(parts.netloc)


def _parse_model(entry: Any, idx: int) -> ModelDescriptor:
    if not isinstance(entry, dict):
        raise CatalogError(f"Model[{idx}] is not an object.")

    model_id = _require_str(entry, "id", idx)
    # "displayName" is accepted as an alias of "name"
    name = entry.get("name") or entry.get("displayName")
    if not isinstance(name, str) or not name.strip():
        raise CatalogError(f"Model[{idx}] missing name.")
    raw_target = _require_str(entry, "computeTarget", idx)

    min_ram = _require_number(entry, "minRamGb", idx)
    min_vram = _require_number(entry, "minVramGb", idx)
    size_gb = _require_number(entry, "sizeGb", idx)

    target = raw_target.lower()
    if target not in _COMPUTE_TARGETS:
        raise CatalogError(
            f"Model[{idx}] has invalid computeTarget '{raw_target}'. Expected 'cpu' or 'gpu'."
        )
    if target == "cpu" and min_vram != 0:
        raise CatalogError(f"Model[{idx}] is cpu but minVramGb != 0.")

    url = entry.get("downloadUrl")
    if not isinstance(url, str) or not _is_absolute_url(url.strip()):
        raise CatalogError(f"Model[{idx}] downloadUrl is not an absolute URL.")

    quantization = entry.get("quantization") or ""
    if not isinstance(quantization, str):
        raise CatalogError(f"Model[{idx}] quantization must be a string.")

    return ModelDescriptor(
        id=model_id,
        name=name.strip(),
        compute_target=target,
        quantization=quantization,
        min_ram_gb=min_ram,
        min_vram_gb=min_vram if "minVramGb" in entry and entry["minVramGb"] is not None else None,
        size_gb=size_gb,
        remote_folder_location=url.strip(),
    )


def parse_catalog(text: str) -> ModelCatalog:
    """Parse and validate manifest JSON text. Raises CatalogError on any violation."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise CatalogError(f"Model manifest is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise CatalogError("Model manifest must be a JSON object.")

    version = data.get("manifestVersion")
    if version != SUPPORTED_MANIFEST_VERSION:
        raise CatalogError(
            f"Unsupported model manifestVersion '{version}'. Expected '{SUPPORTED_MANIFEST_VERSION}'."
        )

    raw_models = data.get("models")
    if not isinstance(raw_models, list) or not raw_models:
        raise CatalogError("Model manifest contains no models.")

    models = [_parse_model(entry, idx) for idx, entry in enumerate(raw_models)]

    seen: set[str] = set()
    for idx, m in enumerate(models):
        if m.id in seen:
            raise CatalogError(f"Model[{idx}] duplicates id '{m.id}'.")
        seen.add(m.id)

    return ModelCatalog(
        manifest_version=version,
        models=tuple(models),
        generated_from=str(data.get("generatedFrom") or ""),
        generated_on=str(data.get("generatedOn") or ""),
    )


def load_catalog(manifest_path: Path | None = None) -> ModelCatalog:
    """Load the bundled manifest, or the one at `manifest_path` if given."""
    try:
        if manifest_path is not None:
            text = Path(manifest_path).read_text(encoding="utf-8")
        else:
            text = (Path(__file__).resolve().parent / _MANIFEST_RESOURCE).read_text(encoding="utf-8")
    except OSError as exc:
        raise CatalogError(f"Failed to read model manifest: {exc}") from exc

    catalog = parse_catalog(text)
    logger.info("Loaded model catalog v%s with %d models", catalog.manifest_version, len(catalog.models))
    return catalog
