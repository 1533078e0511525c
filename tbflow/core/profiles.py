from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import load_dotenv

from .errors import ConfigError


load_dotenv(override=False)

ROOT_ENV = "TBFLOW_ROOT"


def _is_frozen() -> bool:
    return getattr(sys, "frozen", False) and hasattr(sys, "_MEIPASS")


def _project_root() -> Path:
    env = os.getenv(ROOT_ENV)
    if env:
        return Path(env)
    # When frozen (PyInstaller onefile), resources are under sys._MEIPASS
    if _is_frozen():
        return Path(getattr(sys, "_MEIPASS"))  # type: ignore[arg-type]
    # In source layout, this file is under <root>/tbflow/core
    return Path(__file__).resolve().parents[2]


def _app_dir_writable_base() -> Path:
    """Writable base for runtime files (work/logs/out).

    - Frozen: alongside the executable
    - Source: repository root, or ``TBFLOW_ROOT`` when set
    """
    if _is_frozen():
        return Path(sys.executable).resolve().parent
    return _project_root()


def _config_dir() -> Path:
    return _project_root() / "tbflow" / "config"


def _work_dir() -> Path:
    # Always use a writable location outside of bundled resources
    return _app_dir_writable_base() / "tbflow" / "work"


def ensure_work_dirs() -> dict[str, Path]:
    base = _work_dir()
    out = base / "out"
    tmp = base / "tmp"
    logs = base / "logs"
    for p in (out, tmp, logs):
        p.mkdir(parents=True, exist_ok=True)
    return {"out": out, "tmp": tmp, "logs": logs}


def resolve_config_path(path: str | Path) -> Path:
    p = Path(path)
    if p.is_absolute():
        return p
    # Support paths with or without leading 'tbflow/config/'
    parts = p.parts
    if parts and parts[0] == "tbflow":
        return _project_root() / p
    return _config_dir() / p


def read_env(key: str) -> str | None:
    value = os.getenv(key)
    if value is None:
        return None
    return value.strip() or None


def expand_env(value: Any) -> Any:
    """Expand ``${VAR}`` references; a referenced variable that is unset is an error."""

    if isinstance(value, str):
        expanded = os.path.expandvars(value)
        if "${" in value and "}" in value and expanded == value:
            raise ConfigError(f"Environment variable not set for value: {value}")
        return expanded
    return value


def load_config_section(section: str, path: str | Path | None = None) -> Mapping[str, Any]:
    """Return one top-level section of profiles.yaml (empty when the file or section is absent).

    Raises:
        ConfigError: When the file is not valid YAML or the section is not a mapping.
    """

    cfg_path = resolve_config_path(path or "profiles.yaml")
    if not cfg_path.exists():
        return {}
    try:
        with cfg_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"profiles.yaml is not valid YAML: {cfg_path}: {exc}") from exc
    value = data.get(section) if isinstance(data, Mapping) else None
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"profiles.yaml section '{section}' must be a mapping")
    return value


def unseal(text: str) -> str:
    """Placeholder for refresh token unsealing.

    Currently returns the original text; stored refresh tokens are plain.
    """
    return text
