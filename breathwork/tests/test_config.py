import json

import pytest

from ..config import ClientConfig


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("PORT", "BREATHWORK_API_URL", "BREATHWORK_SESSION_COOKIE", "BREATHWORK_SOUND", "BREATHWORK_OFFLINE"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults_follow_port(clean_env):
    assert ClientConfig().api_url == "http://localhost:5000"
    clean_env.setenv("PORT", "8080")
    assert ClientConfig().api_url == "http://localhost:8080"
    clean_env.setenv("PORT", "not-a-port")
    assert ClientConfig().api_url == "http://localhost:5000"


def test_settings_file_then_environment(clean_env, tmp_path):
    settings = tmp_path / "settings.json"
    settings.write_text(json.dumps({
        "api_url": "http://file.example/",
        "default_pattern": "box",
        "sound_enabled": True,
        "request_timeout": "2.5",
    }), encoding="utf-8")
    clean_env.setenv("BREATHWORK_API_URL", "http://env.example")
    clean_env.setenv("BREATHWORK_OFFLINE", "yes")

    config = ClientConfig.load(settings)

    assert config.api_url == "http://env.example"
    assert config.default_pattern == "box"
    assert config.sound_enabled is True
    assert config.offline is True
    assert config.request_timeout == 2.5


def test_missing_or_broken_settings_fall_back(clean_env, tmp_path):
    assert ClientConfig.load(tmp_path / "missing.json").default_pattern == "22"
    broken = tmp_path / "broken.json"
    broken.write_text("[1, 2", encoding="utf-8")
    assert ClientConfig.load(broken).api_url == "http://localhost:5000"


def test_override_skips_none_and_unknown(clean_env, caplog):
    base = ClientConfig()
    updated = base.override(api_url=None, offline=True, colour="blue")
    assert updated.offline is True
    assert base.offline is False
    assert "colour" in caplog.text
    assert base.override(api_url=None) is base


def test_invalid_timeout_keeps_previous(clean_env):
    config = ClientConfig(request_timeout=3.0).override(request_timeout="soon")
    assert config.request_timeout == 3.0


def test_to_dict_masks_cookie(clean_env):
    data = ClientConfig(session_cookie="secret").to_dict()
    assert data["session_cookie"] == "***"
    assert ClientConfig().to_dict()["session_cookie"] is None
