"""Configuration: scan tunables and user settings.

Tunables come from ``ScanSettings`` defaults, overridden by
``COMPONENT_RADAR_*`` environment variables and then by CLI flags. User
settings (API token, default project) live in the key-value store next to
the scan history, with environment variables filling any gaps.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace

from .errors import ConfigError
from .remote import DEFAULT_API_BASE, DEFAULT_MAX_BODY_BYTES

ENV_PREFIX = "COMPONENT_RADAR_"
SETTINGS_STORAGE_KEY = "component-usage-settings-v1"

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


@dataclass(frozen=True)
class ScanSettings:
    batch_size: int = 20
    yield_every: int = 100
    file_timeout: float = 45.0
    batch_delay: float = 0.075
    progress_every: int = 10
    name_fallback: bool = True
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    max_stored_sessions: int = 50
    api_base: str = DEFAULT_API_BASE

    def __post_init__(self):
        if self.batch_size < 1:
            raise ConfigError(f"batch_size must be at least 1, got {self.batch_size}")
        if self.file_timeout <= 0:
            raise ConfigError(f"file_timeout must be positive, got {self.file_timeout}")
        if self.max_stored_sessions < 1:
            raise ConfigError(f"max_stored_sessions must be at least 1, got {self.max_stored_sessions}")
        if self.yield_every < 0 or self.progress_every < 0 or self.batch_delay < 0:
            raise ConfigError("yield_every, progress_every and batch_delay must not be negative")

    @classmethod
    def from_env(cls, environ: dict | None = None) -> "ScanSettings":
        """Build settings from defaults plus ``COMPONENT_RADAR_<FIELD>`` overrides."""
        env = os.environ if environ is None else environ
        overrides = {}
        for f in fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            overrides[f.name] = _coerce(f.name, f.type, raw)
        return cls(**overrides)

    def with_overrides(self, **overrides) -> "ScanSettings":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _coerce(name: str, type_name, raw: str):
    type_name = getattr(type_name, "__name__", type_name)
    try:
        if type_name == "bool":
            lowered = raw.strip().lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
            raise ValueError(raw)
        if type_name == "int":
            return int(raw)
        if type_name == "float":
            return float(raw)
    except ValueError:
        raise ConfigError(f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}") from None
    return raw


@dataclass
class UserSettings:
    api_token: str | None = None
    default_project_id: str | None = None

    def to_dict(self) -> dict:
        return {"api_token": self.api_token, "default_project_id": self.default_project_id}

    def redacted(self) -> dict:
        token = self.api_token
        return {
            "api_token": f"{token[:4]}…{token[-2:]}" if token and len(token) > 8 else ("set" if token else None),
            "default_project_id": self.default_project_id,
        }


def load_user_settings(storage, environ: dict | None = None) -> UserSettings:
    """Read stored settings; env vars fill in whatever is unset."""
    env = os.environ if environ is None else environ
    stored = storage.get(SETTINGS_STORAGE_KEY)
    settings = UserSettings()
    if isinstance(stored, dict):
        settings.api_token = stored.get("api_token") or None
        settings.default_project_id = stored.get("default_project_id") or None
    if not settings.api_token:
        settings.api_token = env.get(ENV_PREFIX + "TOKEN") or env.get("FIGMA_TOKEN") or None
    if not settings.default_project_id:
        settings.default_project_id = env.get(ENV_PREFIX + "PROJECT") or None
    return settings


def save_user_settings(storage, settings: UserSettings) -> None:
    storage.set(SETTINGS_STORAGE_KEY, settings.to_dict())
