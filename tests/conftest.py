import sys
from pathlib import Path

import pytest

# Project root first so the top-level packages import without installation
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.host_config import HostConfig
from core.options_config import OptionsConfig


@pytest.fixture(autouse=True)
def fresh_config_singletons(monkeypatch):
    """Every test sees fresh OptionsConfig and HostConfig singletons."""
    monkeypatch.setattr(OptionsConfig, "_instance", None)
    monkeypatch.setattr(OptionsConfig, "_options", None)
    monkeypatch.setattr(HostConfig, "_instance", None)
    monkeypatch.setattr(HostConfig, "_settings", None)
    yield
