from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from app.bootstrap import get_app_base_dir, get_forced_model_id, get_log_level
from config.artifact_config import ArtifactConfig
from config.download_config import DownloadConfig
from config.engine_config import EngineConfig
from config.paths_config import PathsConfig

APP_NAME = "OfflineAssistant"
APP_ORG = "OfflineAssistant"


@dataclass(frozen=True, slots=True)
class AppConfig:
    paths: PathsConfig
    artifacts: ArtifactConfig
    download: DownloadConfig
    engine: EngineConfig
    forced_model_id: Optional[str] = None
    log_level: str = "INFO"


def build_settings() -> AppConfig:

    paths = PathsConfig.from_strings(
        app_base_dir=get_app_base_dir(APP_NAME, APP_ORG),
        models_folder_name="Models",
        selection_file_name="selected_model.txt",
        log_file_name="log.txt",
    )
    paths.validate()
    paths.ensure_dirs()

    artifacts = ArtifactConfig.from_strings(
        witness_filename="model.onnx",
        engine_config_filename="genai_config.json",
        weight_suffix=".onnx",
        temp_suffix=".download",
    )

    download = DownloadConfig.from_strings(
        endpoint=None, # huggingface_hub default, honours HF_ENDPOINT
        user_agent=f"{APP_NAME}/1.0",
        chunk_size=128 * 1024,
        connect_timeout_s=30.0,
        read_timeout_s=120.0,
    )

    engine = EngineConfig.from_strings(
        warmup_max_length=64,
        chat_max_length=4096,
        context_token_budget=3072,
        default_do_sample=False,
    )

    return AppConfig(
        paths=paths,
        artifacts=artifacts,
        download=download,
        engine=engine,
        forced_model_id=get_forced_model_id(),
        log_level=get_log_level(),
    )
