"""Pytest configuration and fixtures."""
from __future__ import annotations

import pytest

from config.artifact_config import ArtifactConfig
from config.download_config import DownloadConfig
from config.engine_config import EngineConfig
from services.artifact_store import ArtifactStore
from services.selection_state import InMemorySelectionStateStore

from fakes import ENDPOINT, FakeEngine


@pytest.fixture
def artifact_cfg() -> ArtifactConfig:
    return ArtifactConfig.from_strings()


@pytest.fixture
def artifacts(tmp_path, artifact_cfg) -> ArtifactStore:
    """ArtifactStore rooted in a temp Models folder."""
    return ArtifactStore(tmp_path / "Models", artifact_cfg)


@pytest.fixture
def download_cfg() -> DownloadConfig:
    return DownloadConfig.from_strings(endpoint=ENDPOINT, chunk_size=4)


@pytest.fixture
def engine_cfg() -> EngineConfig:
    return EngineConfig.from_strings()


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def selection_store() -> InMemorySelectionStateStore:
    return InMemorySelectionStateStore()
