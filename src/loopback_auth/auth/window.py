"""Browser windows for authentication pages using Playwright.

Each authentication attempt gets its own Chromium instance so that a
hidden (headless) auto sign-in and a visible sign-in never share a window.
Session cookies are kept by the identity provider's pages as usual.
"""

import asyncio
import logging
from collections.abc import Callable

from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from loopback_auth.config import WindowSettings
from loopback_auth.exceptions import WindowError

logger = logging.getLogger(__name__)


class BrowserWindow:
    """Handle for one authentication window."""

    def __init__(self, browser: Browser, page: Page, url: str, hidden: bool):
        self.browser = browser
        self.page = page
        self.url = url
        self.hidden = hidden
        # Set once we start closing the window ourselves
        self.closing = False
        self.closed_by_user = False
        self._callbacks: list[Callable[[], None]] = []


class BrowserWindowSurface:
    """Open authentication pages in Playwright-controlled Chromium windows."""

    def __init__(self, settings: WindowSettings | None = None):
        self.settings = settings or WindowSettings()
        self._playwright: Playwright | None = None
        self._windows: set[BrowserWindow] = set()
        self._pending: set[asyncio.Task] = set()

    async def open(self, url: str, hidden: bool) -> BrowserWindow:
        """Launch a window and navigate it to ``url``.

        Navigation failures are logged; the window stays open so the user
        can see the error page.

        Raises:
            WindowError: If the browser or its page could not be started
        """
        try:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            browser = await self._playwright.chromium.launch(headless=hidden)
        except PlaywrightError as e:
            raise WindowError(f"Could not open authentication window: {e}") from e

        try:
            page = await browser.new_page(
                viewport={"width": self.settings.width, "height": self.settings.height}
            )
        except PlaywrightError as e:
            try:
                await browser.close()
            except PlaywrightError:
                logger.debug("Could not close browser after page creation failed", exc_info=True)
            raise WindowError(f"Could not open authentication window: {e}") from e

        window = BrowserWindow(browser, page, url, hidden)
        self._windows.add(window)
        page.on("close", lambda _page: self._handle_closed(window))
        browser.on("disconnected", lambda _browser: self._handle_closed(window))

        logger.info(f"Opening {'hidden ' if hidden else ''}window '{self.settings.title}'")
        try:
            await page.goto(url, wait_until="commit")
        except PlaywrightError as e:
            logger.warning(f"Navigation to authentication page failed: {e}")

        return window

    def on_closed_by_user(self, window: BrowserWindow, callback: Callable[[], None]) -> None:
        """Register ``callback`` for when the user closes ``window``.

        If the user already closed it, the callback runs immediately.
        """
        if window.closed_by_user:
            callback()
            return
        window._callbacks.append(callback)

    async def close(self, window: BrowserWindow) -> None:
        """Close ``window`` without notifying close observers."""
        if window.closing:
            return
        window.closing = True
        await self._release(window)

    async def aclose(self) -> None:
        """Close every open window and stop Playwright."""
        for window in list(self._windows):
            await self.close(window)
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    def _handle_closed(self, window: BrowserWindow) -> None:
        if window.closing:
            return
        window.closing = True
        window.closed_by_user = True
        logger.info("Authentication window closed by user")

        for callback in window._callbacks:
            try:
                callback()
            except Exception:
                logger.warning("Window close observer failed", exc_info=True)

        task = asyncio.get_running_loop().create_task(self._release(window))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _release(self, window: BrowserWindow) -> None:
        self._windows.discard(window)
        try:
            await window.browser.close()
        except PlaywrightError as e:
            logger.warning(f"Could not close authentication window: {e}")
