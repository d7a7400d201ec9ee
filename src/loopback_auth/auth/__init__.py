"""Authentication module for loopback redirect flows."""

from loopback_auth.auth.listener import (
    CallbackListener,
    CallbackRequest,
    Outcome,
    start_listener,
)
from loopback_auth.auth.protocol import (
    DirectSignIn,
    ProtocolClient,
    SignInOptions,
    UISurface,
    merge_sign_in_options,
)
from loopback_auth.auth.service import AuthService, load_client_factory
from loopback_auth.auth.store import Store
from loopback_auth.auth.window import BrowserWindow, BrowserWindowSurface

__all__ = [
    # Callback listener
    "CallbackListener",
    "CallbackRequest",
    "Outcome",
    "start_listener",
    # Collaborators
    "DirectSignIn",
    "ProtocolClient",
    "SignInOptions",
    "UISurface",
    "merge_sign_in_options",
    # Service
    "AuthService",
    "load_client_factory",
    "Store",
    # Windows
    "BrowserWindow",
    "BrowserWindowSurface",
]
