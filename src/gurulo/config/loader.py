from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Dict

CONFIG_PATH_ENV = "GURULO_CONFIG"
DEFAULT_CONFIG_PATH = Path("config.toml")


def resolve_config_path(path: str | Path | None = None) -> Path:
    """Explicit ``path``, else ``$GURULO_CONFIG``, else ``./config.toml``."""

    if path is not None:
        return Path(path)
    env_path = os.getenv(CONFIG_PATH_ENV)
    return Path(env_path) if env_path else DEFAULT_CONFIG_PATH


def load_raw_config(path: str | Path | None = None) -> Dict[str, Any]:
    """
    Parse the runtime TOML config.

    A missing file yields ``{}`` so every section falls back to environment
    variables. Settings live under ``[gurulo]`` and its sub-tables
    (``[gurulo.cache]``, ``[gurulo.stream]``, ``[gurulo.sync]``).
    """
    target = resolve_config_path(path)
    if not target.is_file():
        return {}

    with target.open("rb") as handle:
        data = tomllib.load(handle)

    section = data.get("gurulo", {})
    if not isinstance(section, dict):
        raise ValueError(f"{target}: [gurulo] must be a table, got {type(section).__name__}")
    return data


__all__ = ["load_raw_config", "resolve_config_path", "DEFAULT_CONFIG_PATH", "CONFIG_PATH_ENV"]
