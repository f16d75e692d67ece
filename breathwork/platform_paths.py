"""Platform-specific paths for per-user Breathwork data.

Keeps settings, logs and the offline session journal out of the install
folder. Relies on standard environment variables rather than extra
dependencies (e.g. platformdirs).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

APP_NAME = "Breathwork"
_DATA_DIR_ENV = "BREATHWORK_HOME"


def is_windows() -> bool:
    return os.name == "nt"


def get_user_data_dir(app_name: str = APP_NAME) -> Path:
    """Return a persistent per-user data directory.

    ``BREATHWORK_HOME`` wins when set.
    Windows: %APPDATA%\\Breathwork
    Elsewhere: ~/.breathwork
    """
    override = os.getenv(_DATA_DIR_ENV)
    if override:
        return Path(override).expanduser()

    if is_windows():
        base = os.getenv("APPDATA")
        if base:
            return Path(base) / app_name
        return Path.home() / "AppData" / "Roaming" / app_name

    return Path.home() / f".{app_name.lower()}"


def get_settings_path(app_name: str = APP_NAME) -> Path:
    return get_user_data_dir(app_name) / "settings.json"


def get_journal_path(app_name: str = APP_NAME) -> Path:
    return get_user_data_dir(app_name) / "sessions.jsonl"


def ensure_dir(path: Path) -> Path:
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path
