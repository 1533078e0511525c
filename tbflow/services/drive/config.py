"""Configuration loader for the Google Drive archive."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from tbflow.core.errors import ConfigError
from tbflow.core.profiles import expand_env, load_config_section, read_env
from tbflow.services.oauth import RetryConfig

DEFAULT_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
DEFAULT_TOKEN_URL = "https://oauth2.googleapis.com/token"
DEFAULT_TIMEOUT = 60.0

CLIENT_ID_ENV = "GOOGLE_DRIVE_CLIENT_ID"
CLIENT_SECRET_ENV = "GOOGLE_DRIVE_CLIENT_SECRET"
REFRESH_TOKEN_ENV = "GOOGLE_DRIVE_REFRESH_TOKEN"
PARENT_ID_ENV = "GOOGLE_DRIVE_PARENT_ID"


@dataclass(slots=True)
class GoogleDriveConfig:
    """Resolved configuration for Google Drive uploads."""

    client_id: str
    client_secret: str
    refresh_token: str
    parent_id: str
    timeout_sec: float = DEFAULT_TIMEOUT
    retries: RetryConfig = field(default_factory=RetryConfig)
    upload_url: str = DEFAULT_UPLOAD_URL
    token_url: str = DEFAULT_TOKEN_URL

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GoogleDriveConfig":
        """Create a configuration instance from the ``drive`` mapping; environment values win."""

        def _value(key: str, env: str | None = None) -> Any:
            if env:
                from_env = read_env(env)
                if from_env:
                    return from_env
            raw = data.get(key)
            return expand_env(raw) if raw is not None else None

        def _require(key: str, env: str) -> str:
            value = _value(key, env)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ConfigError(f"Missing Google Drive {key}: set {env} or drive.{key}")
            return str(value).strip()

        retries_raw = data.get("retries")
        return cls(
            client_id=_require("client_id", CLIENT_ID_ENV),
            client_secret=_require("client_secret", CLIENT_SECRET_ENV),
            refresh_token=_require("refresh_token", REFRESH_TOKEN_ENV),
            parent_id=_require("parent_id", PARENT_ID_ENV),
            timeout_sec=float(data.get("timeout_sec", DEFAULT_TIMEOUT)),
            retries=RetryConfig.from_mapping(retries_raw if isinstance(retries_raw, Mapping) else None),
            upload_url=str(_value("upload_url") or DEFAULT_UPLOAD_URL),
            token_url=str(_value("token_url") or DEFAULT_TOKEN_URL),
        )


def resolve_config(*, config_path: str | Path | None = None) -> GoogleDriveConfig:
    """Resolve Drive settings from profiles.yaml plus ``GOOGLE_DRIVE_*`` overrides.

    Raises:
        ConfigError: If a credential or the parent folder id is missing.
    """

    return GoogleDriveConfig.from_mapping(load_config_section("drive", config_path))


__all__ = [
    "GoogleDriveConfig",
    "CLIENT_ID_ENV",
    "CLIENT_SECRET_ENV",
    "REFRESH_TOKEN_ENV",
    "PARENT_ID_ENV",
    "resolve_config",
]
