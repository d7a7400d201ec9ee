"""Single-shot loopback HTTP listener for authentication callbacks.

A listener binds the first candidate address that is free on this machine,
serves the redirect from the identity provider on a background thread and
hands exactly one :class:`Outcome` back to the event loop that started it.

Typical use::

    listener, callback_url = start_listener(client.handle_sign_in_callback, *uris)
    ...  # send the user to a URL that redirects to callback_url
    outcome = await listener.wait(shutdown_event, timeout=120)
"""

import asyncio
import html
import inspect
import logging
import socket
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, urlsplit, urlunsplit

from loopback_auth.exceptions import (
    AuthCancelledError,
    AuthTimeoutError,
    BindError,
    ConfigError,
)

logger = logging.getLogger(__name__)

# How often the serving thread checks for a shutdown request
SERVE_POLL_INTERVAL = 0.05

SUCCESS_HTML = """
<!DOCTYPE html>
<html>
<head><title>Authentication complete</title></head>
<body style="font-family: system-ui; text-align: center; padding: 50px;">
    <h1>Authentication complete</h1>
    <p>You can close this window.</p>
</body>
</html>
"""

FAILURE_HTML = """
<!DOCTYPE html>
<html>
<head><title>Authentication failed</title></head>
<body style="font-family: system-ui; text-align: center; padding: 50px;">
    <h1>Authentication failed</h1>
    <p>Error: {error}</p>
    <p>Please close this window and try again.</p>
</body>
</html>
"""


@dataclass(frozen=True)
class CallbackRequest:
    """The inbound callback request as received by the listener."""

    method: str
    url: str
    path: str
    query: dict[str, list[str]] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    client_address: tuple | None = None

    def get(self, name: str, default: str | None = None) -> str | None:
        """Return the first value of a query parameter."""
        values = self.query.get(name)
        return values[0] if values else default


CallbackHandler = Callable[[CallbackRequest], None | Awaitable[None]]


@dataclass(frozen=True)
class Outcome:
    """Result of a callback listen operation."""

    succeeded: bool
    error: BaseException | None = None

    @classmethod
    def from_error(cls, error: BaseException | None) -> "Outcome":
        """Build an outcome that succeeded when there is no error."""
        return cls(succeeded=error is None, error=error)


class _CallbackServer(ThreadingHTTPServer):
    """HTTP server that does not wait for request threads on close."""

    block_on_close = False
    callback_listener: "CallbackListener"
    route_path: str

    def handle_error(self, request, client_address):
        logger.debug(f"Error while serving callback request from {client_address}", exc_info=True)


class _CallbackServerV6(_CallbackServer):
    address_family = socket.AF_INET6


class _CallbackRequestHandler(BaseHTTPRequestHandler):
    """Route a single GET on the configured path to the listener."""

    server: _CallbackServer

    def do_GET(self):
        parsed = urlsplit(self.path)
        if parsed.path != self.server.route_path:
            self.send_error(404)
            return

        listener = self.server.callback_listener
        request = CallbackRequest(
            method=self.command,
            url=f"http://{self.headers.get('Host') or listener.netloc}{self.path}",
            path=parsed.path,
            query=parse_qs(parsed.query),
            headers=dict(self.headers.items()),
            client_address=self.client_address,
        )
        outcome = listener.handle(request)

        if outcome.succeeded:
            self._send_page(200, SUCCESS_HTML)
        else:
            self._send_page(400, FAILURE_HTML.format(error=html.escape(str(outcome.error))))

    def _reject_method(self):
        self.send_response(405)
        self.send_header("Allow", "GET")
        self.send_header("Content-Length", "0")
        self.end_headers()

    do_HEAD = do_POST = do_PUT = do_PATCH = do_DELETE = do_OPTIONS = _reject_method

    def _send_page(self, status: int, body: str) -> None:
        data = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(data)))
        self.send_header("X-Content-Type-Options", "nosniff")
        self.send_header("X-Frame-Options", "DENY")
        self.send_header("Cache-Control", "no-store")
        self.end_headers()
        self.wfile.write(data)

    def log_message(self, format, *args):
        """Route HTTP server logging to the module logger."""
        logger.debug(f"{self.address_string()} - {format % args}")


class CallbackListener:
    """An HTTP server that listens for a single callback request.

    Created by :func:`start_listener`. The outcome slot belongs to the event
    loop that started the listener; the serving threads hand results to it
    with ``call_soon_threadsafe`` so that only the first signal is kept.
    """

    def __init__(
        self,
        server: _CallbackServer,
        handler: CallbackHandler,
        url: str,
        loop: asyncio.AbstractEventLoop,
    ):
        self.url = url
        self._server = server
        self._handler = handler
        self._loop = loop
        self._outcome: asyncio.Future[Outcome] = loop.create_future()
        self._lock = threading.Lock()
        self._closed = False

        server.callback_listener = self
        self._thread = threading.Thread(
            target=server.serve_forever,
            kwargs={"poll_interval": SERVE_POLL_INTERVAL},
            name=f"callback-listener-{server.server_address[1]}",
            daemon=True,
        )
        self._thread.start()

    @property
    def netloc(self) -> str:
        return urlsplit(self.url).netloc

    @property
    def closed(self) -> bool:
        """Whether the listener has been closed."""
        with self._lock:
            return self._closed

    def handle(self, request: CallbackRequest) -> Outcome:
        """Run the callback handler for a request and publish its outcome.

        Called from a server thread. A coroutine returned by the handler is
        run on the listener's event loop.
        """
        try:
            result = self._handler(request)
            if inspect.iscoroutine(result):
                asyncio.run_coroutine_threadsafe(result, self._loop).result()
        except Exception as e:
            logger.info(f"Callback handler for {request.path} failed: {e}")
            outcome = Outcome.from_error(e)
        else:
            logger.debug(f"Callback handled on {request.path}")
            outcome = Outcome.from_error(None)

        self._resolve(outcome)
        return outcome

    async def wait(
        self,
        cancelled: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> Outcome:
        """Wait for the callback, a cancellation or the timeout.

        Whichever happens first decides the outcome: the handler's result,
        ``AuthCancelledError`` when ``cancelled`` is set,
        ``AuthTimeoutError`` when ``timeout`` seconds pass, or the close
        cause when the listener was closed elsewhere. The listener is always
        closed before this returns.

        Args:
            cancelled: Event that aborts the wait when set
            timeout: Seconds to wait (None waits indefinitely)

        Returns:
            The outcome of the attempt
        """
        cancel_waiter = None
        try:
            waiters: set[asyncio.Future] = {self._outcome}
            if cancelled is not None:
                cancel_waiter = asyncio.ensure_future(cancelled.wait())
                waiters.add(cancel_waiter)

            await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)

            if self._outcome.done():
                return self._outcome.result()
            if cancelled is not None and cancelled.is_set():
                return Outcome.from_error(AuthCancelledError("Authentication was cancelled"))
            return Outcome.from_error(
                AuthTimeoutError(f"No callback received on {self.url} within {timeout:g}s")
            )
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()
            await self.aclose()

    async def aclose(self, cause: BaseException | None = None) -> None:
        """Close the listener without blocking the event loop.

        Stopping the serving thread takes up to one poll interval, so
        :meth:`close` runs in the default executor.
        """
        if self.closed:
            return
        await asyncio.get_running_loop().run_in_executor(None, self.close, cause)

    def close(self, cause: BaseException | None = None) -> None:
        """Stop the listener and release its socket.

        The first call resolves a pending wait with ``cause`` (an
        ``AuthCancelledError`` by default). Later calls do nothing.
        Blocks until the serving thread has stopped; must not be called
        from the serving thread itself. Prefer :meth:`aclose` on the
        event loop.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True

        if cause is None:
            cause = AuthCancelledError(f"Callback listener on {self.url} was closed")
        self._resolve(Outcome.from_error(cause))

        try:
            self._server.shutdown()
        finally:
            self._server.server_close()
        logger.debug(f"Callback listener on {self.url} closed")

    def _resolve(self, outcome: Outcome) -> None:
        """Offer an outcome to the slot; later offers are dropped."""

        def deliver() -> None:
            if self._outcome.done():
                logger.debug(f"Dropping outcome for {self.url}, already resolved")
                return
            self._outcome.set_result(outcome)

        try:
            self._loop.call_soon_threadsafe(deliver)
        except RuntimeError:
            logger.debug(f"Dropping outcome for {self.url}, event loop is closed")


def _parse_candidate(uri: str) -> tuple[str, int, str]:
    """Split a callback URI into host, port and path.

    Raises:
        ConfigError: If the URI is not an http URI with a host and port
    """
    try:
        parts = urlsplit(uri)
        port = parts.port
    except ValueError as e:
        raise ConfigError(f"Invalid callback address {uri!r}: {e}") from e

    if parts.scheme != "http":
        raise ConfigError(f"Callback address {uri!r} must use the http scheme")
    if not parts.hostname:
        raise ConfigError(f"Callback address {uri!r} has no host")
    if port is None:
        raise ConfigError(f"Callback address {uri!r} has no port")

    return parts.hostname, port, parts.path or "/"


def start_listener(handler: CallbackHandler, *candidates: str) -> tuple[CallbackListener, str]:
    """Start a callback listener on the first candidate address that can be bound.

    Candidates are tried in order. Must be called from a running event loop.

    Args:
        handler: Called with the callback request; raising marks the attempt failed
        *candidates: Callback URIs such as ``http://127.0.0.1:8080/callback``

    Returns:
        The listener and the callback URL it is serving. A port of ``0`` is
        replaced with the port that was actually bound.

    Raises:
        ConfigError: If a candidate URI is malformed
        BindError: If no candidate could be bound
    """
    loop = asyncio.get_running_loop()
    last_error: OSError | None = None

    for candidate in candidates:
        host, port, path = _parse_candidate(candidate)
        server_cls = _CallbackServerV6 if ":" in host else _CallbackServer

        try:
            server = server_cls((host, port), _CallbackRequestHandler)
        except OSError as e:
            logger.debug(f"Cannot listen on {candidate}: {e}")
            last_error = e
            continue

        server.route_path = path
        url = candidate
        if port == 0:
            parts = urlsplit(candidate)
            bound_host = f"[{host}]" if ":" in host else host
            netloc = f"{bound_host}:{server.server_address[1]}"
            url = urlunsplit(parts._replace(netloc=netloc))

        listener = CallbackListener(server, handler, url, loop)
        logger.info(f"Listening for authentication callback on {url}")
        return listener, url

    if last_error is None:
        raise BindError("No callback addresses configured")
    raise BindError(
        f"Could not listen on any callback address: {last_error}",
        last_error=last_error,
    ) from last_error
