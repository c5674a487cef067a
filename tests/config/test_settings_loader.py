"""
Tests for config/settings_loader.py - cached YAML accessors.
"""
from __future__ import annotations

import pytest

from config import settings_loader
from config.settings_loader import (
    get_arbitrary_precision_threshold,
    get_cma_config,
    get_decimal_digits,
    get_norm_tolerance,
    get_output_config,
    get_setting,
    get_update_probability_threshold,
)
from core.exceptions import SettingsValidationError


class TestDefaults:
    """Values read from the bundled base.yaml."""

    def test_accessors(self, monkeypatch):
        monkeypatch.delenv("OPL_CONFIG_PATH", raising=False)
        settings_loader.load_settings(force_reload=True)
        assert get_norm_tolerance() == 1e-9
        assert get_update_probability_threshold() == 1e-9
        assert get_arbitrary_precision_threshold() == 10_000_000
        assert get_decimal_digits() == 50
        assert get_output_config() == {"directory": "tables", "file_pattern": "{n}-{lam}.csv.gz"}

    def test_cma_config(self, monkeypatch):
        monkeypatch.delenv("OPL_CONFIG_PATH", raising=False)
        settings_loader.load_settings(force_reload=True)
        assert get_cma_config() == {
            "max_iterations": 300,
            "population_size": 8,
            "active": True,
            "diagonal_only_iterations": 0,
            "resampling_until_feasible": 0,
            "seed": 314159,
        }


class TestOverrides:
    """OPL_CONFIG_PATH points the loader at another file."""

    def test_env_override(self, temp_config):
        temp_config("cma:\n  max_iterations: 25\ndp:\n  norm_tolerance: 1.0e-7\n")
        assert get_cma_config()["max_iterations"] == 25
        assert get_norm_tolerance() == 1e-7
        # keys absent from the file fall back to the accessor defaults
        assert get_cma_config()["population_size"] == 8
        assert get_decimal_digits() == 50

    def test_dot_path_lookup(self, temp_config):
        temp_config("output:\n  directory: /tmp/elsewhere\n")
        assert get_setting("output.directory") == "/tmp/elsewhere"
        assert get_setting("output.missing", "fallback") == "fallback"
        assert get_setting("output.directory.deeper", 7) == 7

    def test_missing_file_is_empty(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OPL_CONFIG_PATH", str(tmp_path / "absent.yaml"))
        assert settings_loader.load_settings(force_reload=True) == {}
        assert get_decimal_digits() == 50
        monkeypatch.delenv("OPL_CONFIG_PATH")
        settings_loader.load_settings(force_reload=True)

    def test_cache_is_reused(self, temp_config):
        path = temp_config("precision:\n  decimal_digits: 60\n")
        path.write_text("precision:\n  decimal_digits: 70\n", encoding="utf-8")
        assert get_decimal_digits() == 60
        settings_loader.load_settings(force_reload=True)
        assert get_decimal_digits() == 70


class TestValidation:
    """The loader refuses files that break the settings schema."""

    def test_invalid_file_raises(self, tmp_path, monkeypatch):
        path = tmp_path / "bad.yaml"
        path.write_text("dp:\n  update_probability_threshold: 2.0\n", encoding="utf-8")
        monkeypatch.setenv("OPL_CONFIG_PATH", str(path))
        try:
            with pytest.raises(SettingsValidationError) as exc_info:
                settings_loader.load_settings(force_reload=True)
            assert exc_info.value.error_code == "SETTINGS_INVALID"
            # nothing was cached, so accessors keep failing instead of reading the bad value
            with pytest.raises(SettingsValidationError):
                get_update_probability_threshold()
        finally:
            monkeypatch.delenv("OPL_CONFIG_PATH")
            settings_loader.load_settings(force_reload=True)
        assert get_update_probability_threshold() == 1e-9

    def test_valid_override_passes(self, temp_config):
        temp_config("dp:\n  update_probability_threshold: 1.0e-6\n")
        assert get_update_probability_threshold() == 1e-6
