"""Application configuration loaded from YAML with environment variable overrides."""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any

import yaml

# Project root: two levels up from this file (src/app/config.py -> project root)
_PROJECT_ROOT = Path(__file__).resolve().parents[2]

_CONFIG_PATH = _PROJECT_ROOT / "config" / "config.yaml"
_CONFIG_EXAMPLE_PATH = _PROJECT_ROOT / "config" / "config.example.yaml"

# Environment variable -> config key path mapping.
# Each entry maps ENV_VAR to a dot-separated path into the config dict.
_ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "MKI_LOG_LEVEL": ("log_level", str),
    "MKI_PROVIDER": ("provider.name", str),
    "MKI_HTTP_TIMEOUT": ("provider.timeout", float),
    "MKI_CACHE_ENABLED": ("cache.enabled", bool),
    "MKI_CACHE_TTL": ("cache.ttl", int),
    "MKI_BATCH_WORKERS": ("batch.max_workers", int),
}

_DEFAULTS: dict[str, Any] = {
    "log_level": "INFO",
    "provider": {"name": "yahoo", "timeout": 30.0, "rate_limit_seconds": 1.0},
    "cache": {"enabled": True, "ttl": 300},
    "batch": {"max_workers": 4},
    "indicators": {},
}

_instance: dict[str, Any] | None = None


def _set_nested(data: dict[str, Any], dotted_key: str, value: Any) -> None:
    """Set a value in a nested dict using a dot-separated key path."""
    keys = dotted_key.split(".")
    current = data
    for key in keys[:-1]:
        current = current.setdefault(key, {})
    current[keys[-1]] = value


def _cast(value: str, target_type: type) -> Any:
    """Cast a string environment variable to the target type."""
    if target_type is bool:
        return value.lower() in ("1", "true", "yes", "on")
    return target_type(value)


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *override* into a copy of *base*."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load_yaml(path: Path | None = None) -> dict[str, Any]:
    """Load YAML config, falling back to the example file."""
    if path is None:
        path = _CONFIG_PATH if _CONFIG_PATH.exists() else _CONFIG_EXAMPLE_PATH
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _apply_env_overrides(cfg: dict[str, Any]) -> None:
    """Override config values with environment variables when set."""
    for env_var, (dotted_key, target_type) in _ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value is not None:
            _set_nested(cfg, dotted_key, _cast(value, target_type))


def load_config(*, reload: bool = False, path: Path | None = None) -> dict[str, Any]:
    """Load and return the application config (singleton).

    Built-in defaults are overlaid with the YAML file and then with
    environment variables.

    Args:
        reload: Force a fresh load, bypassing the cached instance.
        path: Explicit YAML file to read instead of ``config/config.yaml``.

    Returns:
        The merged configuration dictionary.
    """
    global _instance
    if _instance is not None and not reload and path is None:
        return _instance

    cfg = _merge(_DEFAULTS, _load_yaml(path))
    _apply_env_overrides(cfg)
    _instance = cfg
    return _instance


def get_config(section: str | None = None) -> dict[str, Any]:
    """Get the full config or a specific top-level section.

    Args:
        section: Optional top-level key (e.g. "provider", "cache").
                 Returns the full config dict when None.

    Returns:
        Config dictionary (full or section).

    Raises:
        KeyError: If the requested section does not exist.
    """
    cfg = load_config()
    if section is None:
        return cfg
    if section not in cfg:
        raise KeyError(f"Config section '{section}' not found")
    return cfg[section]
