"""HTTP client for the Breathwork sessions API.

Talks JSON to the Express backend using the authenticated session cookie.
The client never retries: callers decide what a failure means. The session
engine, for instance, logs a failed save and moves on.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional, Sequence

import requests

from ..config import ClientConfig
from ..session.state import SessionSummary

logger = logging.getLogger(__name__)


class ApiError(RuntimeError):
    """Request failed at the network level or returned a non-2xx status."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class BreathworkApiClient:
    """
    Persistence collaborator backed by the REST API.

    Endpoints:
        POST   /api/sessions            save a finished session
        GET    /api/sessions[?date=]    prior sessions (newest first)
        GET    /api/sessions/stats      aggregate counters and streaks
        GET    /api/achievements        unlocked achievements
        GET    /api/favorites           saved pattern presets
        POST   /api/favorites           save a preset
        DELETE /api/favorites/:id       remove a preset
    """

    def __init__(self, config: ClientConfig, *, session: Optional[requests.Session] = None):
        self.config = config
        self.base_url = config.api_url.rstrip("/")
        self.timeout = config.request_timeout
        self.http = session or requests.Session()
        self.http.headers["Accept"] = "application/json"
        if config.session_cookie:
            self.http.cookies.set(config.cookie_name, config.session_cookie)

    # -------- sessions -------------------------------------------------------
    def save_session(self, summary: SessionSummary) -> dict[str, Any]:
        """Persist a finished session. Returns the created record."""
        payload = summary.to_payload()
        logger.info("[api] Saving session pattern=%s duration=%ss", payload["pattern"], payload["duration"])
        return self._request("POST", "/api/sessions", json=payload)

    def list_sessions(self, day: Optional[date] = None) -> list[dict[str, Any]]:
        params = {"date": day.isoformat()} if day else None
        return self._request("GET", "/api/sessions", params=params) or []

    def get_stats(self) -> dict[str, Any]:
        return self._request("GET", "/api/sessions/stats") or {}

    def list_achievements(self) -> list[dict[str, Any]]:
        return self._request("GET", "/api/achievements") or []

    # -------- favorites ------------------------------------------------------
    def list_favorites(self) -> list[dict[str, Any]]:
        return self._request("GET", "/api/favorites") or []

    def save_favorite(self, name: str, sequence: Sequence[float], *, is_quick_save: bool = False) -> dict[str, Any]:
        payload = {"name": name, "sequence": list(sequence), "isQuickSave": is_quick_save}
        return self._request("POST", "/api/favorites", json=payload)

    def delete_favorite(self, favorite_id: int) -> Any:
        return self._request("DELETE", f"/api/favorites/{int(favorite_id)}")

    # -------- transport ------------------------------------------------------
    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as exc:
            logger.warning("[api] %s %s failed: %s", method, path, exc)
            raise ApiError(f"{method} {path} failed: {exc}") from exc

        if not response.ok:
            body = response.text or ""
            logger.warning("[api] %s %s -> %s %s", method, path, response.status_code, body[:200])
            raise ApiError(
                f"{method} {path} returned {response.status_code}: {body.strip() or response.reason}",
                status_code=response.status_code,
                body=body,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(f"{method} {path} returned invalid JSON", status_code=response.status_code) from exc
