"""Headless browser lifecycle management.

Browser startup is the largest fixed latency of a scrape, so a request
amortizes it across URLs:
- SharedBrowserManager: one browser with pages pre-created up front, one
  page per URL. Used for small batches.
- BrowserPool: a small bounded pool of independent browsers handing out
  pages on demand. Used for large batches, and when the shared browser
  cannot be started.

Browsers come from an injectable BrowserLauncher so tests never start
Chromium.
"""

import asyncio
from typing import List, Protocol

import logfire
from playwright.async_api import Browser, Page, Playwright, async_playwright

from research_pipeline.constants import (
    BROWSER_LAUNCH_ARGS,
    MAX_CONCURRENT_PAGES,
    MAX_POOL_BROWSERS,
    PAGE_DEFAULT_TIMEOUT_SECONDS,
)


class BrowserManagerError(Exception):
    """Base exception for browser manager errors."""

    pass


class BrowserInitializationError(BrowserManagerError):
    """Raised when a browser (or every one of its pages) cannot be created."""

    pass


class PageUnavailableError(BrowserManagerError, IndexError):
    """Raised when a requested page is out of range, unusable or closed."""

    pass


class BrowserLauncher(Protocol):
    """Protocol for starting browser processes."""

    async def launch(self) -> Browser:
        """Start a new browser process.

        Raises:
            Exception: If the browser cannot be started
        """
        ...

    async def stop(self) -> None:
        """Release any driver resources held by the launcher."""
        ...


class PlaywrightLauncher:
    """Launch headless Chromium through a single lazily started Playwright driver."""

    def __init__(
        self,
        headless: bool = True,
        args: tuple[str, ...] = BROWSER_LAUNCH_ARGS,
    ):
        """Initialize the launcher.

        Args:
            headless: Run Chromium without a window
            args: Extra Chromium command-line flags
        """
        self._headless = headless
        self._args = list(args)
        self._playwright: Playwright | None = None
        self._lock = asyncio.Lock()

    async def launch(self) -> Browser:
        async with self._lock:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            playwright = self._playwright
        browser = await playwright.chromium.launch(
            headless=self._headless, args=self._args
        )
        logfire.info("Browser launched", headless=self._headless)
        return browser

    async def stop(self) -> None:
        async with self._lock:
            playwright, self._playwright = self._playwright, None
        if playwright is not None:
            await playwright.stop()


async def _close_quietly(resource: Browser | Page, kind: str) -> None:
    """Close a page or browser, logging instead of raising on failure."""
    try:
        await resource.close()
    except Exception as e:
        logfire.warn(
            f"Failed to close {kind}",
            error=str(e),
            error_type=type(e).__name__,
        )


async def _stop_quietly(launcher: BrowserLauncher) -> None:
    try:
        await launcher.stop()
    except Exception as e:
        logfire.warn("Failed to stop browser driver", error=str(e))


class SharedBrowserManager:
    """One browser process with a fixed set of pre-created pages.

    Page i is meant for the i-th URL of a batch, so no two concurrent
    fetches share a page. Provisioning, lookups and teardown are
    serialized by an asyncio.Lock.

    Example:
        async with SharedBrowserManager() as manager:
            await manager.initialize(len(urls))
            page = await manager.get_page(0)
    """

    def __init__(
        self,
        launcher: BrowserLauncher | None = None,
        max_pages: int = MAX_CONCURRENT_PAGES,
        page_timeout_seconds: float = PAGE_DEFAULT_TIMEOUT_SECONDS,
    ):
        """Initialize the manager.

        Args:
            launcher: Browser launcher (defaults to a PlaywrightLauncher owned
                and stopped by this manager)
            max_pages: Upper bound on pre-created pages
            page_timeout_seconds: Default timeout applied to every page
        """
        self._owns_launcher = launcher is None
        self._launcher: BrowserLauncher = launcher or PlaywrightLauncher()
        self._max_pages = max_pages
        self._page_timeout_ms = page_timeout_seconds * 1000
        self._browser: Browser | None = None
        self._pages: List[Page | None] = []
        self._closed = False
        self._lock = asyncio.Lock()

    @property
    def page_count(self) -> int:
        """Number of provisioned page slots (usable or not)."""
        return len(self._pages)

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def initialize(self, url_count: int) -> int:
        """Launch the browser and pre-create min(url_count, max_pages) pages.

        A page that fails to open leaves an unusable slot; get_page() reports
        it so the caller can record a failure for that URL only.

        Args:
            url_count: Number of URLs the caller is about to fetch

        Returns:
            Number of provisioned page slots

        Raises:
            BrowserInitializationError: If the browser cannot be launched or
                no page at all could be created
        """
        async with self._lock:
            if self._closed:
                raise BrowserInitializationError("Browser manager is closed")
            if self._browser is not None:
                return len(self._pages)

            target = min(url_count, self._max_pages)
            if target <= 0:
                return 0

            with logfire.span("Initializing shared browser", page_count=target):
                try:
                    self._browser = await self._launcher.launch()
                except Exception as e:
                    logfire.error(
                        "Shared browser launch failed",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    raise BrowserInitializationError(
                        f"Failed to launch browser: {e}"
                    ) from e

                for index in range(target):
                    try:
                        page = await self._browser.new_page()
                        page.set_default_timeout(self._page_timeout_ms)
                        self._pages.append(page)
                    except Exception as e:
                        logfire.warn(
                            "Failed to create browser page",
                            page_index=index,
                            error=str(e),
                        )
                        self._pages.append(None)

                if all(page is None for page in self._pages):
                    await self._close_unlocked()
                    raise BrowserInitializationError(
                        "Browser started but no page could be created"
                    )

            logfire.info(
                "Shared browser ready",
                pages=len(self._pages),
                usable_pages=sum(page is not None for page in self._pages),
            )
            return len(self._pages)

    async def get_page(self, index: int) -> Page:
        """Return the pre-created page for a batch index.

        Raises:
            PageUnavailableError: If index >= provisioned count, the slot is
                unusable, or the manager is closed
        """
        async with self._lock:
            if self._closed:
                raise PageUnavailableError("Browser manager is closed")
            if index < 0 or index >= len(self._pages):
                raise PageUnavailableError(
                    f"Page index {index} out of range "
                    f"({len(self._pages)} pages provisioned)"
                )
            page = self._pages[index]
            if page is None or page.is_closed():
                raise PageUnavailableError(f"Page {index} is unusable")
            return page

    async def close_all(self) -> None:
        """Close every page, the browser and the driver.

        Safe to call any number of times; close errors are logged, never raised.
        """
        async with self._lock:
            await self._close_unlocked()

    async def _close_unlocked(self) -> None:
        if self._closed:
            return
        self._closed = True

        pages, self._pages = self._pages, []
        for page in pages:
            if page is not None:
                await _close_quietly(page, "page")

        browser, self._browser = self._browser, None
        if browser is not None:
            await _close_quietly(browser, "browser")

        if self._owns_launcher:
            await _stop_quietly(self._launcher)

        logfire.info("Shared browser closed", pages_closed=len(pages))

    async def __aenter__(self) -> "SharedBrowserManager":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close_all()


class BrowserPool:
    """A bounded pool of independent browsers handing out pages on demand.

    Browsers are launched lazily up to max_browsers and then reused
    round-robin. Disconnected browsers are pruned whenever a page is
    acquired.
    """

    def __init__(
        self,
        launcher: BrowserLauncher | None = None,
        max_browsers: int = MAX_POOL_BROWSERS,
        page_timeout_seconds: float = PAGE_DEFAULT_TIMEOUT_SECONDS,
    ):
        self._owns_launcher = launcher is None
        self._launcher: BrowserLauncher = launcher or PlaywrightLauncher()
        self._max_browsers = max_browsers
        self._page_timeout_ms = page_timeout_seconds * 1000
        self._browsers: List[Browser] = []
        self._next_index = 0
        self._closed = False
        self._lock = asyncio.Lock()

    @property
    def size(self) -> int:
        """Number of browsers currently in the pool."""
        return len(self._browsers)

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def acquire_page(self) -> Page:
        """Open a fresh page on one of the pool's browsers.

        Returns:
            A new page; hand it back with release_page()

        Raises:
            BrowserInitializationError: If the pool is empty and no browser
                can be launched
            PageUnavailableError: If the pool is closed or the page cannot
                be opened
        """
        async with self._lock:
            if self._closed:
                raise PageUnavailableError("Browser pool is closed")

            self._prune_disconnected()

            if len(self._browsers) < self._max_browsers:
                try:
                    self._browsers.append(await self._launcher.launch())
                    logfire.info("Pool browser launched", pool_size=len(self._browsers))
                except Exception as e:
                    if not self._browsers:
                        raise BrowserInitializationError(
                            f"Failed to launch pool browser: {e}"
                        ) from e
                    logfire.warn(
                        "Pool browser launch failed, reusing existing browsers",
                        pool_size=len(self._browsers),
                        error=str(e),
                    )

            browser = self._browsers[self._next_index % len(self._browsers)]
            self._next_index += 1

        try:
            page = await browser.new_page()
        except Exception as e:
            raise PageUnavailableError(f"Failed to open page: {e}") from e
        page.set_default_timeout(self._page_timeout_ms)
        return page

    async def release_page(self, page: Page) -> None:
        """Close a page obtained from acquire_page(); errors are logged."""
        await _close_quietly(page, "page")

    def _prune_disconnected(self) -> None:
        connected = [browser for browser in self._browsers if browser.is_connected()]
        pruned = len(self._browsers) - len(connected)
        if pruned:
            logfire.warn("Pruned disconnected browsers", pruned=pruned)
            self._browsers = connected

    async def close_all(self) -> None:
        """Close every browser in the pool. Idempotent and non-raising."""
        async with self._lock:
            if self._closed:
                return
            self._closed = True
            browsers, self._browsers = self._browsers, []

        for browser in browsers:
            await _close_quietly(browser, "browser")
        if self._owns_launcher:
            await _stop_quietly(self._launcher)
        logfire.info("Browser pool closed", browsers_closed=len(browsers))

    async def __aenter__(self) -> "BrowserPool":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close_all()
