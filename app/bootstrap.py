from __future__ import annotations
from pathlib import Path
from typing import Optional
import os
from platformdirs import user_data_dir

_TRUTHY = {"1", "true", "True", "yes", "YES"}

# Determines where the app data should live
# In dev mode, uses .appdata
# In prod uses the OS-standard user data directory.
def get_app_base_dir(app_name: str, org: str) -> Path:
    # Explicit override, also used by tests
    override = os.getenv("APP_DATA_DIR")
    if override:
        return Path(override).expanduser().resolve()

    # Dev mode -> store inside the repo
    if os.getenv("DEV_MODE", "").strip() in _TRUTHY:
        project_root = Path(__file__).resolve().parents[1]
        return (project_root / ".appdata").resolve()

    # Prod mode -> OS-standard user data dir
    return Path(user_data_dir(app_name, org)).resolve()

# Reads the forced-model selection policy from the environment.
# Blank means "let the hardware decide".
def get_forced_model_id() -> Optional[str]:
    forced = os.getenv("FORCE_MODEL_ID", "").strip()
    return forced or None

# Reads the log verbosity; DEV_MODE turns on debug output.
def get_log_level() -> str:
    if os.getenv("DEV_MODE", "").strip() in _TRUTHY:
        return "DEBUG"
    return "INFO"
