"""
Typed Settings Schema (Pydantic)
================================

Provides typed, validated configuration for the DP engines and the optimizer.

Usage:
    from config.settings_schema import load_validated_settings

    settings = load_validated_settings()
    tol = settings.dp.norm_tolerance
    pop = settings.cma.population_size
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.exceptions import SettingsValidationError

logger = logging.getLogger(__name__)


# ============================================================================
# Schema Definitions
# ============================================================================

class PrecisionConfig(BaseModel):
    """Numerical regime selection."""
    arbitrary_precision_threshold: int = Field(default=10_000_000, ge=1)
    decimal_digits: int = Field(default=50, ge=20, le=1000)


class DPConfig(BaseModel):
    """Tolerances of the DP sweep."""
    norm_tolerance: float = Field(default=1e-9, gt=0, le=1e-3)
    update_probability_threshold: float = Field(default=1e-9, ge=0, lt=1)


class CMAConfig(BaseModel):
    """Continuous optimizer defaults."""
    max_iterations: int = Field(default=300, ge=0)
    population_size: int = Field(default=8, ge=2)
    active: bool = True
    diagonal_only_iterations: int = Field(default=0, ge=0)
    resampling_until_feasible: int = Field(default=0, ge=0)
    seed: Optional[int] = 314159


class OutputConfig(BaseModel):
    """Where computed tables go."""
    directory: str = "tables"
    file_pattern: str = "{n}-{lam}.csv.gz"

    @field_validator("file_pattern")
    @classmethod
    def _pattern_has_keys(cls, value: str) -> str:
        if "{n}" not in value or "{lam}" not in value:
            raise ValueError("file_pattern must contain {n} and {lam}")
        return value


class LoggingConfig(BaseModel):
    """Logging verbosity."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


class Settings(BaseModel):
    """Complete settings schema."""
    model_config = ConfigDict(extra="allow")

    precision: PrecisionConfig = Field(default_factory=PrecisionConfig)
    dp: DPConfig = Field(default_factory=DPConfig)
    cma: CMAConfig = Field(default_factory=CMAConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# ============================================================================
# Validation Functions
# ============================================================================

def _load_yaml_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load raw YAML configuration."""
    if path is None:
        config_path = os.getenv("OPL_CONFIG_PATH")
        path = Path(config_path) if config_path else Path(__file__).parent / "base.yaml"

    if not path.exists():
        logger.warning(f"Config file not found: {path}")
        return {}

    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def validate_settings(raw: Dict[str, Any]) -> Settings:
    """
    Validate an already-parsed settings mapping.

    Raises:
        SettingsValidationError: If settings are invalid
    """
    try:
        return Settings.model_validate(raw)
    except ValidationError as e:
        logger.error(f"Settings validation failed: {e}")
        raise SettingsValidationError(
            "settings failed schema validation",
            context={"errors": e.error_count()},
            cause=e,
        ) from e


def load_validated_settings(path: Optional[Path] = None) -> Settings:
    """
    Load and validate settings from base.yaml (or ``path``).

    Returns:
        Validated Settings object

    Raises:
        SettingsValidationError: If settings are invalid
    """
    return validate_settings(_load_yaml_config(path))
