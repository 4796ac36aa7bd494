from __future__ import annotations


class CatalogError(ValueError):
    """The model catalog manifest is malformed or incomplete. Fatal at startup."""


class RemoteListingError(RuntimeError):
    """A remote folder reference could not be parsed or listed."""


class DownloadError(OSError):
    """A model file could not be materialized on disk."""


class UnsafePathError(DownloadError):
    """A remote relative path would resolve outside the model folder."""


class EngineError(RuntimeError):
    """The inference engine failed to load, warm up, or generate."""
