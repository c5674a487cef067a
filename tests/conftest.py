"""
Pytest configuration and shared fixtures for the DP engine tests.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from computation import DiscreteStrengthEngine  # noqa: E402
from transition import Precision  # noqa: E402


@pytest.fixture(scope="session")
def rls_30():
    """Discrete tables for n=30, lambda=1 (small enough to build once per session)."""
    return DiscreteStrengthEngine(30, 1, precision=Precision.STANDARD).build()


@pytest.fixture(scope="session")
def plus_8_30():
    """Discrete tables for n=30, lambda=8."""
    return DiscreteStrengthEngine(30, 8, precision=Precision.STANDARD).build()


@pytest.fixture
def temp_logs_dir(tmp_path, monkeypatch):
    """Route structured logs into a temporary directory."""
    logs_dir = tmp_path / "logs"
    monkeypatch.setenv("OPL_LOG_DIR", str(logs_dir))
    return logs_dir


@pytest.fixture
def temp_config(tmp_path, monkeypatch):
    """Write a settings file and point the loader at it; returns a writer."""
    from config import settings_loader

    path = tmp_path / "settings.yaml"

    def write(text: str) -> Path:
        path.write_text(text, encoding="utf-8")
        monkeypatch.setenv("OPL_CONFIG_PATH", str(path))
        settings_loader.load_settings(force_reload=True)
        return path

    yield write
    monkeypatch.delenv("OPL_CONFIG_PATH", raising=False)
    settings_loader.load_settings(force_reload=True)
