"""Exceptions for the loopback authentication flow."""


class AuthFlowError(Exception):
    """Base exception for authentication flow errors."""


class ConfigError(AuthFlowError):
    """A callback address or duration is malformed."""


class BindError(AuthFlowError):
    """None of the candidate callback addresses could be bound."""

    def __init__(self, message: str, last_error: OSError | None = None):
        super().__init__(message)
        self.last_error = last_error


class ProtocolError(AuthFlowError):
    """The protocol client failed to build a URL or handle a callback."""


class WindowError(AuthFlowError):
    """The authentication window could not be opened."""


class AuthTimeoutError(AuthFlowError):
    """The authentication attempt did not complete before its deadline."""


class AuthCancelledError(AuthFlowError):
    """The attempt was cancelled by a service shutdown or a closed listener."""


class UserClosedError(AuthCancelledError):
    """The user closed the authentication window before a callback arrived."""

    def __init__(self, message: str = "Authentication window was closed by the user"):
        super().__init__(message)
