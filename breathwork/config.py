"""Client configuration.

Settings resolve in layers: built-in defaults, then the per-user
``settings.json``, then environment variables. CLI flags are applied last by
the caller via :meth:`ClientConfig.override`.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional

from .platform_paths import get_settings_path

logger = logging.getLogger(__name__)

DEFAULT_PORT = 5000
DEFAULT_COOKIE_NAME = "connect.sid"


def _default_api_url() -> str:
    port = os.getenv("PORT", "").strip()
    if not port.isdigit():
        port = str(DEFAULT_PORT)
    return f"http://localhost:{port}"


def _env_flag(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class ClientConfig:
    """Where sessions are persisted and how the guided session behaves.

    Attributes:
        api_url: Base URL of the sessions API (``PORT`` feeds the default)
        session_cookie: Value of the authenticated session cookie
        cookie_name: Name of the session cookie issued by the server
        request_timeout: Seconds before an API request is abandoned
        sound_enabled: Play audio cues on phase changes
        default_pattern: Catalog key used when no pattern is given
        offline: Keep sessions in the local journal instead of the API
    """

    api_url: str = ""
    session_cookie: Optional[str] = None
    cookie_name: str = DEFAULT_COOKIE_NAME
    request_timeout: float = 5.0
    sound_enabled: bool = False
    default_pattern: str = "22"
    offline: bool = False

    def __post_init__(self) -> None:
        if not self.api_url:
            self.api_url = _default_api_url()
        self.api_url = self.api_url.rstrip("/")

    @classmethod
    def load(cls, settings_path: Optional[Path] = None) -> "ClientConfig":
        """Build a config from defaults, the settings file and the environment."""
        config = cls()
        path = Path(settings_path) if settings_path else get_settings_path()
        if path.exists():
            config = config.override(**_read_settings(path))
        return config.override(**_read_env())

    def override(self, **values: Any) -> "ClientConfig":
        """Return a copy with every non-None value applied."""
        known = {f.name: f for f in fields(self)}
        updates: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if key not in known:
                logger.warning("[config] Ignoring unknown setting %r", key)
                continue
            updates[key] = value
        if not updates:
            return self
        merged = replace(self, **updates)
        try:
            merged.request_timeout = float(merged.request_timeout)
        except (TypeError, ValueError):
            logger.warning("[config] Invalid request_timeout %r; keeping %s", merged.request_timeout, self.request_timeout)
            merged.request_timeout = self.request_timeout
        return merged

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if data.get("session_cookie"):
            data["session_cookie"] = "***"
        return data


def _read_settings(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("[config] Could not read settings %s: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("[config] Settings file %s is not a JSON object", path)
        return {}
    return data


def _read_env() -> dict[str, Any]:
    values: dict[str, Any] = {}
    api_url = os.getenv("BREATHWORK_API_URL")
    if api_url:
        values["api_url"] = api_url
    cookie = os.getenv("BREATHWORK_SESSION_COOKIE")
    if cookie:
        values["session_cookie"] = cookie
    sound = os.getenv("BREATHWORK_SOUND")
    if sound:
        values["sound_enabled"] = _env_flag(sound)
    offline = os.getenv("BREATHWORK_OFFLINE")
    if offline:
        values["offline"] = _env_flag(offline)
    return values
