"""Authentication service driving browser-redirect sign in and sign out.

Each attempt binds a loopback callback listener, asks the protocol client
for the provider URL, opens it in a window and waits for the first of:
the callback, the configured timeout, a service shutdown or the user
closing the window. The listener and the window are each torn down
exactly once, whichever of these wins.
"""

import asyncio
import importlib
import inspect
import logging
import threading
from typing import Any

from loopback_auth.auth.listener import (
    CallbackListener,
    CallbackRequest,
    Outcome,
    start_listener,
)
from loopback_auth.auth.protocol import (
    ProtocolClient,
    SignInOptions,
    UISurface,
    merge_sign_in_options,
)
from loopback_auth.auth.store import Store
from loopback_auth.auth.window import BrowserWindowSurface
from loopback_auth.config import Settings, get_settings, parse_duration
from loopback_auth.exceptions import (
    AuthCancelledError,
    AuthTimeoutError,
    ConfigError,
    ProtocolError,
    UserClosedError,
    WindowError,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "loopback-auth"


def load_client_factory(path: str):
    """Resolve a ``module:callable`` path to the protocol client factory.

    Raises:
        ConfigError: If the path is malformed or cannot be imported
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(f"Invalid client factory {path!r}, expected 'module:callable'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import client factory module {module_name!r}: {e}") from e
    try:
        return getattr(module, attr)
    except AttributeError as e:
        raise ConfigError(f"Module {module_name!r} has no attribute {attr!r}") from e


def _sign_out_callback(request: CallbackRequest) -> None:
    """The sign out redirect carries nothing to validate."""
    return None


class AuthService:
    """Browser-redirect authentication service.

    Attempts are coroutines and must run on one event loop; shutdown() may be
    called from any thread and is handed to that loop.
    """

    def __init__(self, settings: Settings, client: ProtocolClient, surface: UISurface):
        self.settings = settings
        self.client = client
        self.surface = surface
        self._shutdown = asyncio.Event()
        # Loop that runs the attempts, recorded when one starts
        self._loop: asyncio.AbstractEventLoop | None = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "AuthService":
        """Build a service with a Playwright window surface and the configured client.

        The client factory is called with the settings and a fresh
        :class:`Store` for its session state.

        Raises:
            ConfigError: If no client factory is configured
        """
        settings = settings or get_settings()
        if not settings.client_factory:
            raise ConfigError(
                "No protocol client configured. Set client_factory in config.yaml "
                "or LOOPBACK_AUTH_CLIENT_FACTORY."
            )
        factory = load_client_factory(settings.client_factory)
        client = factory(settings, Store())
        return cls(settings, client, BrowserWindowSurface(settings.window))

    @property
    def service_name(self) -> str:
        return SERVICE_NAME

    def startup(self) -> None:
        """Called when the service is loaded. Nothing to prepare."""

    def shutdown(self) -> None:
        """Cancel every in-flight attempt.

        Waiting attempts resolve with ``AuthCancelledError`` and tear down
        their own listener and window. Safe to call from any thread.
        """
        logger.info("Shutting down authentication service")
        loop = self._loop
        if loop is None or loop.is_closed() or not loop.is_running():
            self._shutdown.set()
            return

        try:
            on_loop = asyncio.get_running_loop() is loop
        except RuntimeError:
            on_loop = False

        if on_loop:
            self._shutdown.set()
            return
        try:
            loop.call_soon_threadsafe(self._shutdown.set)
        except RuntimeError:
            # The loop closed after the check above
            self._shutdown.set()

    async def aclose(self) -> None:
        """Release the window surface, if it holds resources."""
        close = getattr(self.surface, "aclose", None)
        if close is not None:
            await close()

    async def sign_in(self, options: SignInOptions | None = None) -> bool:
        """Sign in through a visible browser window.

        Blocks until the callback arrives or the attempt fails. If the user
        still has an active session at the provider, the window completes
        the flow without interaction.

        Args:
            options: Sign-in options; set fields override the defaults and
                the redirect URI defaults to the bound callback address

        Returns:
            True when the callback was handled successfully

        Raises:
            ConfigError: A callback address is malformed
            BindError: No callback address could be bound
            ProtocolError: The sign-in URL could not be built or the
                callback was rejected
            WindowError: The window could not be opened
            AuthTimeoutError: The configured auth timeout elapsed
            AuthCancelledError: The service was shut down
            UserClosedError: The user closed the window first
        """
        listener, callback_url = self._start_listener(
            self._handle_sign_in_callback, *self.settings.sign_in_uris()
        )
        sign_in_url = await self._build_url(
            listener, lambda: self.client.sign_in(merge_sign_in_options(callback_url, options))
        )
        outcome = await self._run_attempt(
            listener, sign_in_url, hidden=False, timeout=self.settings.auth_timeout
        )
        if outcome.error is not None:
            raise outcome.error
        return outcome.succeeded

    async def try_auto_sign_in(self, time_allowed: str) -> bool:
        """Try to sign in silently using an existing provider session.

        Runs the sign-in flow in a hidden window. Running out of time or
        being cancelled means there is no usable session; the caller should
        fall back to :meth:`sign_in`.

        Args:
            time_allowed: Duration string such as ``"10s"``

        Returns:
            True if signed in, False if no session was found in time

        Raises:
            ConfigError: ``time_allowed`` or a callback address is malformed
            BindError: No callback address could be bound
            ProtocolError: The URL could not be built or the callback failed
            WindowError: The hidden window could not be opened
        """
        timeout = parse_duration(time_allowed)
        if self.settings.auth_timeout is not None:
            timeout = min(timeout, self.settings.auth_timeout)

        listener, callback_url = self._start_listener(
            self._handle_sign_in_callback, *self.settings.sign_in_uris()
        )
        sign_in_url = await self._build_url(
            listener, lambda: self.client.sign_in(SignInOptions(redirect_uri=callback_url))
        )
        outcome = await self._run_attempt(listener, sign_in_url, hidden=True, timeout=timeout)

        if isinstance(outcome.error, (AuthTimeoutError, AuthCancelledError)):
            logger.info(f"No active session found: {outcome.error}")
            return False
        if outcome.error is not None:
            raise outcome.error
        return outcome.succeeded

    async def sign_out(self) -> bool:
        """Sign out through a hidden browser window.

        Returns:
            True when the provider redirected back to the sign out callback

        Raises:
            Same as :meth:`sign_in`.
        """
        listener, callback_url = self._start_listener(
            _sign_out_callback, *self.settings.sign_out_uris()
        )
        sign_out_url = await self._build_url(listener, lambda: self.client.sign_out(callback_url))
        outcome = await self._run_attempt(
            listener, sign_out_url, hidden=True, timeout=self.settings.auth_timeout
        )
        if outcome.error is not None:
            raise outcome.error
        return outcome.succeeded

    def is_authenticated(self) -> bool:
        """Return True if the user is signed in."""
        return self.client.is_authenticated()

    def get_id_token(self) -> str:
        """Return the current ID token."""
        return self.client.get_id_token()

    def get_access_token(self, resource: str = "") -> Any:
        """Return the access token for ``resource`` ("" for the default)."""
        return self.client.get_access_token(resource)

    def fetch_user_info(self) -> Any:
        """Return the user info for the signed-in user."""
        return self.client.fetch_user_info()

    def _handle_sign_in_callback(self, request: CallbackRequest):
        try:
            result = self.client.handle_sign_in_callback(request)
        except Exception as e:
            raise ProtocolError(f"Sign in callback failed: {e}") from e
        if inspect.iscoroutine(result):
            return self._await_sign_in_callback(result)
        return None

    async def _await_sign_in_callback(self, pending) -> None:
        try:
            await pending
        except Exception as e:
            raise ProtocolError(f"Sign in callback failed: {e}") from e

    def _start_listener(self, handler, *candidates: str) -> tuple[CallbackListener, str]:
        self._loop = asyncio.get_running_loop()
        return start_listener(handler, *candidates)

    async def _build_url(self, listener: CallbackListener, build) -> str:
        try:
            return build()
        except Exception as e:
            await listener.aclose()
            raise ProtocolError(f"Could not build authentication URL: {e}") from e

    async def _run_attempt(
        self,
        listener: CallbackListener,
        url: str,
        hidden: bool,
        timeout: float | None,
    ) -> Outcome:
        try:
            window = await self.surface.open(url, hidden)
        except BaseException as e:
            await listener.aclose()
            if isinstance(e, Exception) and not isinstance(e, WindowError):
                raise WindowError(f"Could not open authentication window: {e}") from e
            raise

        loop = asyncio.get_running_loop()
        closed_by_user = threading.Event()

        def on_closed() -> None:
            closed_by_user.set()
            asyncio.run_coroutine_threadsafe(listener.aclose(UserClosedError()), loop)

        try:
            self.surface.on_closed_by_user(window, on_closed)
            outcome = await listener.wait(self._shutdown, timeout)
        finally:
            await listener.aclose()
            if not closed_by_user.is_set():
                await self._close_window(window)

        logger.debug(f"Authentication attempt resolved: succeeded={outcome.succeeded}")
        return outcome

    async def _close_window(self, window: Any) -> None:
        try:
            await self.surface.close(window)
        except Exception:
            logger.warning("Could not close authentication window", exc_info=True)
