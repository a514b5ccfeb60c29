import asyncio
from typing import Awaitable, Callable, Iterable, Optional, Union

from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright

from consent_scanner.platform.config import settings
from consent_scanner.platform.logger import get_logger

logger = get_logger(__name__)

Launcher = Callable[[], Awaitable[Browser]]


def matches_crash_signature(
    error: Union[BaseException, str], signatures: Optional[Iterable[str]] = None
) -> bool:
    """Case-insensitive substring test of the error text against crash signatures."""
    message = str(error).lower()
    if signatures is None:
        signatures = settings.BROWSER_CRASH_SIGNATURES
    return any(signature.lower() in message for signature in signatures)


class BrowserSession:
    """
    Owns the one browser process shared by every scan in this process.

    - acquire() hands out a live browser, launching one on demand. Concurrent
      callers during a launch all await the same launch task, so at most one
      process is ever started at a time.
    - A browser that disconnected, or that was reported through
      report_failure() with a crash signature, is replaced on the next acquire.
    - Contexts are per scan; the scan that opened one closes it.
    - Teardown never raises.
    """

    def __init__(
        self,
        launcher: Optional[Launcher] = None,
        crash_signatures: Optional[Iterable[str]] = None,
        user_agent: Optional[str] = None,
        viewport: Optional[dict] = None,
        headless: Optional[bool] = None,
        launch_args: Optional[Iterable[str]] = None,
    ):
        self._launcher = launcher or self._launch_chromium
        self._crash_signatures = tuple(
            s.lower() for s in (crash_signatures or settings.BROWSER_CRASH_SIGNATURES)
        )
        self._user_agent = user_agent or settings.BROWSER_USER_AGENT
        self._viewport = viewport or {
            "width": settings.BROWSER_VIEWPORT_WIDTH,
            "height": settings.BROWSER_VIEWPORT_HEIGHT,
        }
        self._headless = settings.BROWSER_HEADLESS if headless is None else headless
        self._launch_args = list(launch_args or settings.BROWSER_LAUNCH_ARGS)

        self._browser: Optional[Browser] = None
        self._playwright: Optional[Playwright] = None
        self._launch_task: Optional[asyncio.Task] = None
        self._crashed = False

    async def acquire(self) -> Browser:
        """Return a live browser, launching (or replacing) it if needed."""
        if self._launch_task is None:
            if self._is_healthy():
                return self._browser

            stale, self._browser = self._browser, None
            self._crashed = False
            self._launch_task = asyncio.ensure_future(self._replace(stale))

        # shield: a cancelled waiter must not abort the launch for the others
        return await asyncio.shield(self._launch_task)

    async def new_context(self, browser: Browser) -> BrowserContext:
        """Isolated context with a fixed identity so scans stay comparable."""
        return await browser.new_context(
            user_agent=self._user_agent,
            viewport=self._viewport,
        )

    async def close_context(self, context: Optional[BrowserContext]) -> None:
        if context is None:
            return
        try:
            await context.close()
        except Exception as e:
            logger.warning(f"Error closing context: {e}")

    async def close(self) -> None:
        """Shut the browser and the Playwright driver down."""
        task = self._launch_task
        if task is not None:
            try:
                await task
            except Exception as e:
                logger.warning(f"Pending browser launch failed during close: {e}")

        browser, self._browser = self._browser, None
        if browser is not None:
            await self._close_browser(browser)

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.warning(f"Error stopping Playwright: {e}")
            self._playwright = None

    def is_crash_signature(self, error: Union[BaseException, str]) -> bool:
        """
        True when the error text says the engine itself died.

        Plain substring matching on the driver's wording, so unknown crash
        messages come back False and are treated as ordinary failures.
        """
        return matches_crash_signature(error, self._crash_signatures)

    def report_failure(self, error: BaseException) -> bool:
        """Flag the current browser for replacement if `error` is a crash."""
        if not self.is_crash_signature(error):
            return False
        if self._browser is not None:
            logger.warning(f"Browser crash detected, will relaunch: {error}")
        self._crashed = True
        return True

    def _is_healthy(self) -> bool:
        if self._browser is None or self._crashed:
            return False
        try:
            if self._browser.is_connected():
                return True
            logger.warning("Browser disconnected, will relaunch")
        except Exception as e:
            logger.warning(f"Browser health check failed, will relaunch: {e}")
        return False

    async def _replace(self, stale: Optional[Browser]) -> Browser:
        try:
            if stale is not None:
                await self._close_browser(stale)

            logger.info("Launching new browser instance...")
            browser = await self._launcher()
            self._browser = browser
            logger.info("Browser launched successfully")
            return browser
        finally:
            self._launch_task = None

    async def _launch_chromium(self) -> Browser:
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        return await self._playwright.chromium.launch(
            headless=self._headless,
            args=self._launch_args,
        )

    async def _close_browser(self, browser: Browser) -> None:
        try:
            await browser.close()
        except Exception as e:
            logger.warning(f"Error closing browser: {e}")
