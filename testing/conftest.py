import os
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from brain.config_loader import reset_config_cache


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep activity logs out of the working tree and pin the timezone/config."""
    monkeypatch.setenv("BRAIN_ACTIVITY_LOG_DIR", str(tmp_path / "activity_logs"))
    monkeypatch.delenv("BRAIN_TIMEZONE", raising=False)
    monkeypatch.setenv("BRAIN_CONFIG_PATH", str(tmp_path / "missing-config.json"))
    reset_config_cache()
    yield
    reset_config_cache()
