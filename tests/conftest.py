"""Shared pytest fixtures."""

from unittest.mock import patch

import pytest

from loopback_auth import config as config_module
from loopback_auth.config import reset_settings


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the YAML source at a temporary file and clear env overrides."""
    config_path = tmp_path / "config.yaml"
    for key in (
        "LOOPBACK_AUTH_AUTH_TIMEOUT",
        "LOOPBACK_AUTH_CLIENT_FACTORY",
        "LOOPBACK_AUTH_LOG_LEVEL",
        "LOOPBACK_AUTH_REDIRECT_ADDRESSES",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    with patch.object(config_module, "CONFIG_PATH", config_path):
        reset_settings()
        yield config_path
        reset_settings()
