"""Interfaces of the collaborators driven by the authentication service.

The OAuth/OIDC client and the window surface are supplied by the
application. Only the methods listed here are used.
"""

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any, Protocol

from loopback_auth.auth.listener import CallbackRequest


@dataclass
class DirectSignIn:
    """Skip the sign-in page and go straight to a social or SSO connector."""

    method: str
    target: str


@dataclass
class SignInOptions:
    """Options passed to the protocol client when building a sign-in URL.

    Unset fields (empty strings, empty collections, None) fall back to the
    defaults chosen by the service.
    """

    redirect_uri: str = ""
    prompt: str = ""
    first_screen: str = ""
    identifiers: list[str] = field(default_factory=list)
    direct_sign_in: DirectSignIn | None = None
    login_hint: str = ""
    extra_params: dict[str, str] = field(default_factory=dict)


def merge_sign_in_options(callback_url: str, options: SignInOptions | None = None) -> SignInOptions:
    """Combine caller options with the bound callback URL.

    The redirect URI defaults to ``callback_url``; every field the caller
    set overrides the default.
    """
    merged = SignInOptions(redirect_uri=callback_url)
    if options is None:
        return merged

    overrides = {
        name: value
        for name, value in vars(options).items()
        if value is not None and value != "" and value != [] and value != {}
    }
    return replace(merged, **overrides)


class ProtocolClient(Protocol):
    """OAuth/OIDC client that owns the protocol exchange and session state."""

    def sign_in(self, options: SignInOptions) -> str:
        """Return the URL that starts a sign-in."""
        ...

    def sign_out(self, post_logout_redirect_uri: str) -> str:
        """Return the URL that ends the session."""
        ...

    def handle_sign_in_callback(self, request: CallbackRequest) -> None:
        """Complete a sign-in from the callback request; raise on failure."""
        ...

    def is_authenticated(self) -> bool: ...

    def get_id_token(self) -> str: ...

    def get_access_token(self, resource: str = "") -> Any: ...

    def fetch_user_info(self) -> Any: ...


class UISurface(Protocol):
    """Window system used to show the authentication page."""

    async def open(self, url: str, hidden: bool) -> Any:
        """Open a window at ``url`` and return a handle for it."""
        ...

    def on_closed_by_user(self, window: Any, callback: Callable[[], None]) -> None:
        """Call ``callback`` once if the user closes ``window``."""
        ...

    async def close(self, window: Any) -> None:
        """Close ``window``; closing twice is allowed."""
        ...
