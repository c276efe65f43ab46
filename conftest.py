"""Pytest configuration and fixtures for pvekit tests.

CRITICAL: Protects the user's configuration from test modifications.
"""

import os
import shutil
from pathlib import Path

import pytest


@pytest.fixture(scope="session", autouse=True)
def protect_production_config():
    """Protect ~/.pvekit/config.toml from being modified by tests.

    This fixture:
    1. Backs up the real config.toml before any tests run
    2. Restores it after all tests complete
    """
    config_path = Path.home() / ".pvekit" / "config.toml"
    backup_path = Path.home() / ".pvekit" / ".config.toml.pytest-backup"

    config_existed = config_path.exists()
    if config_existed:
        shutil.copy2(config_path, backup_path)
        print(f"\n[PYTEST] Protected config.toml - backup at {backup_path}")

    yield

    if config_existed and backup_path.exists():
        shutil.copy2(backup_path, config_path)
        backup_path.unlink()
        print("\n[PYTEST] Restored config.toml from backup")
    elif backup_path.exists():
        backup_path.unlink()


@pytest.fixture(scope="session", autouse=True)
def prevent_real_cluster_operations():
    """Mark test mode so nothing talks to a real Proxmox cluster by accident."""
    os.environ["PVEKIT_TEST_MODE"] = "true"

    yield

    if "PVEKIT_TEST_MODE" in os.environ:
        del os.environ["PVEKIT_TEST_MODE"]


@pytest.fixture
def isolated_config(tmp_path):
    """Provide isolated config directory for tests.

    Use this fixture instead of modifying ~/.pvekit/config.toml.
    """
    config_dir = tmp_path / ".pvekit"
    config_dir.mkdir(parents=True)
    return config_dir


@pytest.fixture
def mock_config_path(isolated_config, monkeypatch):
    """Point ConfigManager at the isolated config instead of ~/.pvekit.

    Example:
        def test_something(mock_config_path):
            config = ConfigManager.load_config()  # reads tmp_path only
    """
    config_file = isolated_config / "config.toml"

    from pvekit.config_manager import ConfigManager

    def mock_get_path(custom_path=None):
        if custom_path:
            return Path(custom_path)
        return config_file

    monkeypatch.setattr(ConfigManager, "get_config_path", mock_get_path)

    return config_file
