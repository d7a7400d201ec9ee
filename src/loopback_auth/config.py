"""Configuration management using Pydantic Settings."""

import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from loopback_auth.exceptions import ConfigError

# Config file location
CONFIG_PATH = Path.home() / ".config" / "loopback-auth" / "config.yaml"

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from YAML config file."""

    def get_field_value(
        self, field: Any, field_name: str
    ) -> tuple[Any, str, bool]:
        """Get field value from YAML config."""
        config = self._load_config()
        if field_name in config:
            return config[field_name], field_name, False
        return None, field_name, False

    def _load_config(self) -> dict:
        """Load config from YAML file."""
        if not CONFIG_PATH.exists():
            return {}
        try:
            with open(CONFIG_PATH) as f:
                return yaml.safe_load(f) or {}
        except yaml.YAMLError:
            return {}

    def __call__(self) -> dict[str, Any]:
        """Return all config values."""
        return self._load_config()


def parse_duration(value: str) -> float:
    """Parse a duration string such as ``30s``, ``1m30s`` or ``500ms``.

    A bare ``0`` is accepted. Every other value needs a unit on each
    component; a leading sign applies to the whole duration.

    Args:
        value: Duration string

    Returns:
        The duration in seconds

    Raises:
        ConfigError: If the string is not a valid duration
    """
    text = value.strip()
    sign = 1.0
    if text[:1] in ("+", "-"):
        if text[0] == "-":
            sign = -1.0
        text = text[1:]

    if text == "0":
        return 0.0
    if not text:
        raise ConfigError(f"Invalid duration: {value!r}")

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if match is None:
            raise ConfigError(f"Invalid duration: {value!r}")
        number, unit = match.groups()
        total += float(number) * _DURATION_UNITS[unit]
        pos = match.end()

    return sign * total


class RedirectURIs(BaseModel):
    """A pair of callback URIs for sign in and sign out redirects.

    Both URIs must be registered with the identity provider as redirect
    and post sign-out redirect URIs.
    """

    sign_in: str = Field(description="URI to redirect to after sign in")
    sign_out: str = Field(description="URI to redirect to after sign out")


class WindowSettings(BaseModel):
    """Options for the browser window opened during an auth flow."""

    title: str = Field(default="Sign in", description="Window title shown in logs")
    width: int = Field(default=800, ge=200, le=4096, description="Window width in pixels")
    height: int = Field(default=700, ge=200, le=4096, description="Window height in pixels")


def _default_redirect_addresses() -> list[RedirectURIs]:
    return [
        RedirectURIs(
            sign_in="http://127.0.0.1:8080/callback",
            sign_out="http://127.0.0.1:8080/signed-out",
        ),
        RedirectURIs(
            sign_in="http://127.0.0.1:8081/callback",
            sign_out="http://127.0.0.1:8081/signed-out",
        ),
    ]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="LOOPBACK_AUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    redirect_addresses: list[RedirectURIs] = Field(
        default_factory=_default_redirect_addresses,
        description="Ordered callback address pairs; the first one that can be bound is used",
    )
    auth_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Seconds to wait for sign in or sign out to complete (unset waits indefinitely)",
    )
    window: WindowSettings = Field(default_factory=WindowSettings)
    client_factory: str | None = Field(
        default=None,
        description="Protocol client factory as 'module:callable'",
    )
    log_level: str = Field(default="WARNING", description="Logging level for the CLI")

    def sign_in_uris(self) -> list[str]:
        """Return the ordered list of sign in callback URIs."""
        return [pair.sign_in for pair in self.redirect_addresses]

    def sign_out_uris(self) -> list[str]:
        """Return the ordered list of sign out callback URIs."""
        return [pair.sign_out for pair in self.redirect_addresses]

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings sources - priority: env > yaml > defaults."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
        )


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (useful for testing)."""
    global _settings
    _settings = None
