from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path

@dataclass(frozen=True, slots=True)
class PathsConfig:
    """
    File system locations used by the app

    All paths are stored as Path objects and normalized (expanded + resolved).
    Directories can be created with `ensure_dirs()`.
    """
    app_base_dir: Path
    models_root: Path
    selection_file: Path
    log_file: Path

    @staticmethod
    def from_strings(
        app_base_dir: str | Path,
        models_folder_name: str = "Models",
        selection_file_name: str = "selected_model.txt",
        log_file_name: str = "log.txt",
    ) -> "PathsConfig":
        """
        Convenience constructor: everything lives under one app data folder.

        :param app_base_dir: Per-user application data directory
        :param models_folder_name: Sub-folder holding one folder per model id
        :param selection_file_name: File holding the persisted model id
        :param log_file_name: Diagnostic log file
        """
        base = PathsConfig._norm(app_base_dir)
        return PathsConfig(
            app_base_dir=base,
            models_root=base / models_folder_name,
            selection_file=base / selection_file_name,
            log_file=base / log_file_name,
        )

    def ensure_dirs(self) -> None:
        """
        Create the app data and models directories if they don't exist.
        """
        self.app_base_dir.mkdir(parents=True, exist_ok=True)
        self.models_root.mkdir(parents=True, exist_ok=True)

    def validate(self) -> None:
        """
        Validate the layout.
        Raises ValueError with a helpful message if something is wrong
        """
        for p, label in [
            (self.app_base_dir, "app_base_dir"),
            (self.models_root, "models_root"),
        ]:
            if p.exists() and not p.is_dir():
                raise ValueError(f"{label} exists but is not a directory: {p}")
        if self.selection_file.parent == self.models_root or self.models_root in self.selection_file.parents:
            raise ValueError("selection_file must live outside the models folder.")

    @staticmethod
    def _norm(p: str | Path) -> Path:
        """
        Normalize a path: expand ~ and resolve to an absolute path.
        """
        return Path(p).expanduser().resolve()
