"""
YAML settings loader for the (1+lambda) DP engines.
Provides config-gated access to base.yaml settings.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from config.settings_schema import validate_settings


_settings_cache: Optional[Dict[str, Any]] = None


def get_config_path() -> Path:
    """Return path to base.yaml config file."""
    # Check environment variable first, then default to project config
    env_path = os.getenv("OPL_CONFIG_PATH")
    if env_path:
        return Path(env_path)
    return Path(__file__).parent / "base.yaml"


def load_settings(force_reload: bool = False) -> Dict[str, Any]:
    """
    Load, validate and cache settings from base.yaml.

    Raises:
        SettingsValidationError: If the file violates the settings schema;
            nothing is cached in that case.
    """
    global _settings_cache
    if _settings_cache is not None and not force_reload:
        return _settings_cache

    _settings_cache = None
    config_path = get_config_path()
    if not config_path.exists():
        _settings_cache = {}
        return _settings_cache

    with open(config_path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    validate_settings(raw)
    _settings_cache = raw
    return _settings_cache


def get_setting(path: str, default: Any = None) -> Any:
    """
    Get a nested setting by dot-notation path.
    Example: get_setting("cma.max_iterations", 300)
    """
    settings = load_settings()
    keys = path.split(".")
    value = settings
    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


# Specific config accessors for clarity

def get_norm_tolerance() -> float:
    """Maximum allowed deviation of a probability vector's sum from one."""
    return float(get_setting("dp.norm_tolerance", 1e-9))


def get_update_probability_threshold() -> float:
    """Update probabilities below this make a strength count as stuck."""
    return float(get_setting("dp.update_probability_threshold", 1e-9))


def get_arbitrary_precision_threshold() -> int:
    """Value of n * lambda above which decimal arithmetic is selected."""
    return int(get_setting("precision.arbitrary_precision_threshold", 10_000_000))


def get_decimal_digits() -> int:
    """Significant digits used by the arbitrary-precision finder."""
    return int(get_setting("precision.decimal_digits", 50))


def get_cma_config() -> Dict[str, Any]:
    """Get full optimizer configuration."""
    return {
        "max_iterations": int(get_setting("cma.max_iterations", 300)),
        "population_size": int(get_setting("cma.population_size", 8)),
        "active": bool(get_setting("cma.active", True)),
        "diagonal_only_iterations": int(get_setting("cma.diagonal_only_iterations", 0)),
        "resampling_until_feasible": int(get_setting("cma.resampling_until_feasible", 0)),
        "seed": get_setting("cma.seed", None),
    }


def get_output_config() -> Dict[str, Any]:
    """Get table output configuration."""
    return {
        "directory": str(get_setting("output.directory", "tables")),
        "file_pattern": str(get_setting("output.file_pattern", "{n}-{lam}.csv.gz")),
    }
