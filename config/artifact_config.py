from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ArtifactConfig:
    witness_filename: str        # completeness witness inside each model folder
    engine_config_filename: str  # required by the inference engine
    weight_suffix: str           # extension of model weight files
    temp_suffix: str             # suffix of in-flight downloads

    def validate(self) -> None:
        for name in ("witness_filename", "engine_config_filename"):
            val = getattr(self, name)
            if not isinstance(val, str) or not val.strip():
                raise ValueError(f"ArtifactConfig.{name} must be a non-empty string.")
            if "/" in val or "\\" in val:
                raise ValueError(f"ArtifactConfig.{name} must be a bare file name.")
        for name in ("weight_suffix", "temp_suffix"):
            val = getattr(self, name)
            if not isinstance(val, str) or not val.startswith(".") or len(val) < 2:
                raise ValueError(f"ArtifactConfig.{name} must look like '.ext'.")
        if not self.witness_filename.endswith(self.weight_suffix):
            raise ValueError("ArtifactConfig.witness_filename must carry the weight suffix.")

    @staticmethod
    def from_strings(
        witness_filename: str = "model.onnx",
        engine_config_filename: str = "genai_config.json",
        weight_suffix: str = ".onnx",
        temp_suffix: str = ".download",
    ) -> "ArtifactConfig":
        cfg = ArtifactConfig(
            witness_filename=witness_filename,
            engine_config_filename=engine_config_filename,
            weight_suffix=weight_suffix,
            temp_suffix=temp_suffix,
        )
        cfg.validate()
        return cfg
