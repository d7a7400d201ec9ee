"""Tests for configuration loading."""

import pytest
import yaml

from loopback_auth.config import RedirectURIs, Settings, get_settings, parse_duration, reset_settings
from loopback_auth.exceptions import ConfigError


class TestRedirectAddresses:
    """Tests for splitting address pairs into candidate lists."""

    def test_pairs_split_in_order(self):
        """Sign in and sign out lists keep the configured pair order."""
        settings = Settings(
            redirect_addresses=[
                RedirectURIs(sign_in="http://127.0.0.1:1/in", sign_out="http://127.0.0.1:1/out"),
                RedirectURIs(sign_in="http://127.0.0.1:2/in", sign_out="http://127.0.0.1:2/out"),
            ]
        )

        assert settings.sign_in_uris() == ["http://127.0.0.1:1/in", "http://127.0.0.1:2/in"]
        assert settings.sign_out_uris() == ["http://127.0.0.1:1/out", "http://127.0.0.1:2/out"]

    def test_defaults(self):
        """Default settings have loopback addresses and no timeout."""
        settings = Settings()

        assert settings.auth_timeout is None
        assert settings.sign_in_uris()[0].startswith("http://127.0.0.1:")
        assert len(settings.sign_in_uris()) == len(settings.sign_out_uris())

    def test_empty_list_allowed(self):
        """An empty address list is accepted; binding reports it later."""
        assert Settings(redirect_addresses=[]).sign_in_uris() == []


class TestSettingsSources:
    """Tests for YAML and environment settings sources."""

    def test_yaml_file(self, isolated_config):
        """Settings are read from the YAML config file."""
        isolated_config.write_text(yaml.dump({
            "auth_timeout": 45,
            "redirect_addresses": [
                {"sign_in": "http://localhost:9000/cb", "sign_out": "http://localhost:9000/out"},
            ],
            "window": {"width": 1024},
        }))

        settings = get_settings()

        assert settings.auth_timeout == 45
        assert settings.sign_in_uris() == ["http://localhost:9000/cb"]
        assert settings.window.width == 1024

    def test_env_overrides_yaml(self, isolated_config, monkeypatch):
        """Environment variables take priority over the YAML file."""
        isolated_config.write_text(yaml.dump({"auth_timeout": 45}))
        monkeypatch.setenv("LOOPBACK_AUTH_AUTH_TIMEOUT", "5")

        assert Settings().auth_timeout == 5

    def test_invalid_yaml_ignored(self, isolated_config):
        """A broken YAML file falls back to defaults."""
        isolated_config.write_text("auth_timeout: [unclosed")

        assert Settings().auth_timeout is None

    def test_timeout_must_be_positive(self):
        """A zero auth timeout is rejected."""
        with pytest.raises(ValueError):
            Settings(auth_timeout=0)

    def test_get_settings_is_cached(self):
        """get_settings returns the same instance until reset."""
        first = get_settings()
        assert get_settings() is first

        reset_settings()
        assert get_settings() is not first


class TestParseDuration:
    """Tests for duration strings."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("30s", 30.0),
            ("500ms", 0.5),
            ("1m30s", 90.0),
            ("2h", 7200.0),
            ("1.5s", 1.5),
            ("0", 0.0),
            ("-1s", -1.0),
            (" 10s ", 10.0),
        ],
    )
    def test_valid(self, value, expected):
        assert parse_duration(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", ["", "30", "abc", "10x", "s", "1m 30s", "-"])
    def test_invalid(self, value):
        with pytest.raises(ConfigError):
            parse_duration(value)
