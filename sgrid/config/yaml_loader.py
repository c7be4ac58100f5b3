"""YAML Defaults Loader

Loads the packaged defaults.yaml and, when SGRID_DEFAULTS_PATH names an
existing file, overlays the user file on top of it (keys missing from the
user file keep their packaged value). No dependencies on other config
modules, so every module in the package can import it.

Usage:
    from sgrid.config.yaml_loader import get_default
    cap = get_default('numerics.newton_max_iterations', 100)
"""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any

import yaml

ENV_DEFAULTS_PATH = "SGRID_DEFAULTS_PATH"

_PACKAGED_DEFAULTS = Path(__file__).parent / "defaults.yaml"

_CONFIG_CACHE: dict[str, Any] | None = None


def _read_yaml(path: Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def _overlay(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _overlay(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load_yaml_config() -> dict[str, Any]:
    """Read the packaged defaults and the optional user overlay.

    Returns:
        Dictionary with all default values.

    Raises:
        FileNotFoundError: If the packaged defaults.yaml is missing.
    """
    if not _PACKAGED_DEFAULTS.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {_PACKAGED_DEFAULTS}\n"
            f"Reinstall the package or set {ENV_DEFAULTS_PATH}."
        )
    config = _read_yaml(_PACKAGED_DEFAULTS)

    env_path = os.getenv(ENV_DEFAULTS_PATH)
    if env_path and Path(env_path).exists():
        config = _overlay(config, _read_yaml(Path(env_path)))
    return config


def _get_config() -> dict[str, Any]:
    global _CONFIG_CACHE
    if _CONFIG_CACHE is None:
        _CONFIG_CACHE = _load_yaml_config()
    return _CONFIG_CACHE


def get_defaults() -> dict[str, Any]:
    """Return a deep copy of the merged defaults dictionary.

    Example:
        >>> get_defaults()['acceleration']['default']
        'cpu-blas'
    """
    return copy.deepcopy(_get_config())


def get_default(key_path: str, default: Any = None) -> Any:
    """Look up a value by dotted key path.

    Args:
        key_path: Dotted path to the value (e.g., 'acceleration.gpu_id')
        default: Returned when any part of the path is missing

    Returns:
        The configured value or ``default``.

    Example:
        >>> get_default('numerics.newton_max_iterations')
        100
        >>> get_default('numerics.missing', 7)
        7
    """
    value: Any = _get_config()
    for key in key_path.split("."):
        if not isinstance(value, dict) or value.get(key) is None:
            return default
        value = value[key]
    return value


def reload_defaults() -> None:
    """Drop the cache and re-read the YAML files from disk.

    Call after changing SGRID_DEFAULTS_PATH or editing the files.
    """
    global _CONFIG_CACHE
    _CONFIG_CACHE = _load_yaml_config()
