"""Tests for the command line interface."""

import socket
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from loopback_auth import config as config_module
from loopback_auth.auth.service import AuthService
from loopback_auth.config import RedirectURIs, Settings
from loopback_auth.exceptions import UserClosedError
from loopback_auth.main import app

runner = CliRunner()


@pytest.fixture
def settings(monkeypatch):
    """Install settings with ephemeral callback ports."""
    settings = Settings(
        redirect_addresses=[
            RedirectURIs(
                sign_in="http://127.0.0.1:0/callback",
                sign_out="http://127.0.0.1:0/signed-out",
            )
        ],
        auth_timeout=30,
    )
    monkeypatch.setattr(config_module, "_settings", settings)
    return settings


@pytest.fixture
def service():
    """Patch service construction with a mock service."""
    service = MagicMock()
    service.aclose = AsyncMock()
    with patch.object(AuthService, "from_settings", return_value=service):
        yield service


class TestConfigCommands:
    """Tests for the config sub-commands."""

    def test_show(self, settings):
        """Show lists the callback addresses in order."""
        result = runner.invoke(app, ["config", "show"])

        assert result.exit_code == 0
        assert "http://127.0.0.1:0/callback" in result.output
        assert "http://127.0.0.1:0/signed-out" in result.output
        assert "30s" in result.output
        assert "not set" in result.output

    def test_probe_reports_bound_address(self, settings):
        """Probe binds the first usable address and reports the real port."""
        result = runner.invoke(app, ["config", "probe"])

        assert result.exit_code == 0
        assert "http://127.0.0.1:" in result.output
        assert "/callback" in result.output
        assert "127.0.0.1:0/" not in result.output

    def test_probe_sign_out(self, settings):
        result = runner.invoke(app, ["config", "probe", "--sign-out"])

        assert result.exit_code == 0
        assert "/signed-out" in result.output

    def test_probe_nothing_available(self, monkeypatch):
        """Probe fails when every address is taken."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
            busy.bind(("127.0.0.1", 0))
            busy.listen(1)
            port = busy.getsockname()[1]
            uri = f"http://127.0.0.1:{port}/callback"
            monkeypatch.setattr(
                config_module,
                "_settings",
                Settings(redirect_addresses=[RedirectURIs(sign_in=uri, sign_out=uri)]),
            )

            result = runner.invoke(app, ["config", "probe"])

        assert result.exit_code == 1
        assert "No callback address available" in result.output

    def test_path(self):
        result = runner.invoke(app, ["config", "path"])

        assert result.exit_code == 0
        assert "config.yaml" in result.output.replace("\n", "")


class TestAuthCommands:
    """Tests for login, auto-login, logout and status."""

    def test_login_without_client_factory(self, settings):
        """Without a client factory the command explains the configuration problem."""
        result = runner.invoke(app, ["login"])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output
        assert "Type: ConfigError" not in result.output

    def test_verbose_shows_error_details(self, settings):
        """--verbose adds the exception type and message to the error panel."""
        result = runner.invoke(app, ["--verbose", "login"])

        assert result.exit_code == 1
        assert "Type: ConfigError" in result.output
        assert "No protocol client configured" in result.output.replace("\n", "")

    def test_login_success(self, settings, service):
        """Login passes the options through and reports success."""
        service.sign_in = AsyncMock(return_value=True)

        result = runner.invoke(app, ["login", "--prompt", "login", "--login-hint", "user@example.com"])

        assert result.exit_code == 0
        assert "Signed in." in result.output
        options = service.sign_in.await_args.args[0]
        assert options.prompt == "login"
        assert options.login_hint == "user@example.com"
        service.aclose.assert_awaited_once()

    def test_login_window_closed(self, settings, service):
        """A closed window is reported as such."""
        service.sign_in = AsyncMock(side_effect=UserClosedError())

        result = runner.invoke(app, ["login"])

        assert result.exit_code == 1
        assert "Window closed" in result.output
        service.aclose.assert_awaited_once()

    def test_auto_login_no_session(self, settings, service):
        """No session found suggests an interactive login."""
        service.try_auto_sign_in = AsyncMock(return_value=False)

        result = runner.invoke(app, ["auto-login", "5s"])

        assert result.exit_code == 1
        assert "No active session found" in result.output
        service.try_auto_sign_in.assert_awaited_once_with("5s")

    def test_auto_login_default_time_allowed(self, settings, service):
        service.try_auto_sign_in = AsyncMock(return_value=True)

        result = runner.invoke(app, ["auto-login"])

        assert result.exit_code == 0
        service.try_auto_sign_in.assert_awaited_once_with("10s")

    def test_logout(self, settings, service):
        service.sign_out = AsyncMock(return_value=True)

        result = runner.invoke(app, ["logout"])

        assert result.exit_code == 0
        assert "Signed out." in result.output

    def test_status_not_signed_in(self, settings, service):
        service.is_authenticated.return_value = False

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 1
        assert "Not signed in" in result.output

    def test_status_signed_in(self, settings, service):
        """Status shows the user info when signed in."""
        service.is_authenticated.return_value = True
        service.fetch_user_info.return_value = {"sub": "user-1"}

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "Signed in" in result.output
        assert "user-1" in result.output

    def test_status_user_info_failure(self, settings, service):
        """A failing user info request is a warning, not an error."""
        service.is_authenticated.return_value = True
        service.fetch_user_info.side_effect = RuntimeError("userinfo endpoint down")

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "userinfo endpoint down" in result.output
