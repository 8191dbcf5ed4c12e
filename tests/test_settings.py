"""Tests for scan tunables and user settings."""

import pytest

from component_radar.errors import ConfigError
from component_radar.settings import (
    SETTINGS_STORAGE_KEY,
    ScanSettings,
    UserSettings,
    load_user_settings,
    save_user_settings,
)
from component_radar.store import MemoryStorage


def test_defaults():
    s = ScanSettings()
    assert s.batch_size == 20
    assert s.file_timeout == 45.0
    assert s.batch_delay == 0.075
    assert s.progress_every == 10
    assert s.yield_every == 100
    assert s.name_fallback is True
    assert s.max_stored_sessions == 50


def test_from_env():
    s = ScanSettings.from_env({
        "COMPONENT_RADAR_BATCH_SIZE": "5",
        "COMPONENT_RADAR_FILE_TIMEOUT": "2.5",
        "COMPONENT_RADAR_NAME_FALLBACK": "off",
        "COMPONENT_RADAR_API_BASE": "https://figma.test/v1",
        "COMPONENT_RADAR_YIELD_EVERY": "",
        "UNRELATED": "x",
    })
    assert s.batch_size == 5
    assert s.file_timeout == 2.5
    assert s.name_fallback is False
    assert s.api_base == "https://figma.test/v1"
    assert s.yield_every == 100


def test_from_env_rejects_garbage():
    with pytest.raises(ConfigError):
        ScanSettings.from_env({"COMPONENT_RADAR_BATCH_SIZE": "many"})
    with pytest.raises(ConfigError):
        ScanSettings.from_env({"COMPONENT_RADAR_NAME_FALLBACK": "maybe"})


@pytest.mark.parametrize("kwargs", [
    {"batch_size": 0},
    {"file_timeout": 0},
    {"max_stored_sessions": 0},
    {"batch_delay": -1},
])
def test_validation(kwargs):
    with pytest.raises(ConfigError):
        ScanSettings(**kwargs)


def test_with_overrides_ignores_none():
    s = ScanSettings().with_overrides(batch_size=3, file_timeout=None)
    assert s.batch_size == 3
    assert s.file_timeout == 45.0


def test_user_settings_round_trip():
    storage = MemoryStorage()
    save_user_settings(storage, UserSettings("figd_secret_token", "77"))
    loaded = load_user_settings(storage, environ={})
    assert loaded.api_token == "figd_secret_token"
    assert loaded.default_project_id == "77"
    assert storage.get(SETTINGS_STORAGE_KEY)["default_project_id"] == "77"


def test_user_settings_env_fallback():
    env = {"FIGMA_TOKEN": "from-env", "COMPONENT_RADAR_PROJECT": "88"}
    loaded = load_user_settings(MemoryStorage(), environ=env)
    assert loaded.api_token == "from-env"
    assert loaded.default_project_id == "88"

    env["COMPONENT_RADAR_TOKEN"] = "preferred"
    assert load_user_settings(MemoryStorage(), environ=env).api_token == "preferred"


def test_stored_settings_beat_env():
    storage = MemoryStorage()
    save_user_settings(storage, UserSettings("stored", None))
    loaded = load_user_settings(storage, environ={"FIGMA_TOKEN": "env", "COMPONENT_RADAR_PROJECT": "88"})
    assert loaded.api_token == "stored"
    assert loaded.default_project_id == "88"


def test_redacted():
    assert UserSettings("figd_secret_token").redacted()["api_token"] == "figd…en"
    assert UserSettings("short").redacted()["api_token"] == "set"
    assert UserSettings().redacted()["api_token"] is None
