"""Page fetching: navigate a browser page and extract its main content.

Components:
- ContentExtractor: pick the main content container out of rendered HTML
- PageFetcher: navigate one page to one URL and build a ScrapedDocument
- WebScraper: fetch a batch of URLs concurrently, choosing the browser
  strategy (shared browser or browser pool) once per batch

Per-URL failures never escape the batch: they come back as failed
ScrapedDocuments in input order.
"""

import asyncio
import functools
import re
import time
from typing import Awaitable, Callable, List

import logfire
from bs4 import BeautifulSoup
from playwright.async_api import Page

from research_pipeline.config import Settings, get_settings
from research_pipeline.constants import (
    CONTENT_SELECTORS,
    MAX_CONCURRENT_PAGES,
    MAX_POOL_BROWSERS,
    MIN_CONTENT_LENGTH_CHARS,
    NAVIGATION_TIMEOUT_SECONDS,
    PAGE_DEFAULT_TIMEOUT_SECONDS,
    PAGE_SETTLE_SECONDS,
    SCRAPE_TIMEOUT_SECONDS,
)
from research_pipeline.models.scraper_models import ScrapedDocument
from research_pipeline.services.browser_manager import (
    BrowserInitializationError,
    BrowserLauncher,
    BrowserPool,
    PlaywrightLauncher,
    SharedBrowserManager,
)
from research_pipeline.services.progress import ProgressCallbacks

_WHITESPACE_RE = re.compile(r"\s+")


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class ContentExtractor:
    """Extract the main text of a rendered HTML page."""

    # Elements whose text is never content
    _STRIP_TAGS = ("script", "style", "noscript", "template", "svg")

    def __init__(
        self,
        selectors: tuple[str, ...] = CONTENT_SELECTORS,
        min_content_length: int = MIN_CONTENT_LENGTH_CHARS,
    ):
        """Initialize the extractor.

        Args:
            selectors: CSS selectors tried in order, most specific first
            min_content_length: A candidate's text must be longer than this
        """
        self._selectors = selectors
        self._min_content_length = min_content_length

    def extract(self, html: str) -> str:
        """Return the text of the first content container that is long enough.

        Body text is returned as a last resort even when it is short.

        Args:
            html: Rendered page HTML

        Returns:
            Whitespace-normalized text (may be empty)
        """
        soup = BeautifulSoup(html, "html.parser")
        for tag in soup(list(self._STRIP_TAGS)):
            tag.decompose()

        for selector in self._selectors:
            element = soup.select_one(selector)
            if element is None:
                continue
            text = self.normalize_whitespace(element.get_text(" "))
            if len(text) > self._min_content_length:
                return text

        root = soup.body or soup
        return self.normalize_whitespace(root.get_text(" "))

    def extract_title(self, html: str) -> str:
        soup = BeautifulSoup(html, "html.parser")
        if soup.title and soup.title.string:
            return soup.title.string.strip()
        return ""

    @staticmethod
    def normalize_whitespace(text: str) -> str:
        return _WHITESPACE_RE.sub(" ", text).strip()


class PageFetcher:
    """Navigate a page to a URL and extract title and main content."""

    def __init__(
        self,
        extractor: ContentExtractor | None = None,
        navigation_timeout_seconds: float = NAVIGATION_TIMEOUT_SECONDS,
        settle_seconds: float = PAGE_SETTLE_SECONDS,
    ):
        """Initialize the fetcher.

        Args:
            extractor: Content extractor (defaults to ContentExtractor)
            navigation_timeout_seconds: Timeout for page.goto()
            settle_seconds: Fixed wait after DOMContentLoaded so deferred
                rendering can finish
        """
        self._extractor = extractor or ContentExtractor()
        self._navigation_timeout_ms = navigation_timeout_seconds * 1000
        self._settle_seconds = settle_seconds

    async def fetch(self, page: Page, url: str) -> ScrapedDocument:
        """Fetch one URL on an exclusively held page.

        Waits for DOMContentLoaded rather than network idle, then one short
        fixed settle wait.

        Args:
            page: Browser page owned by the caller for this fetch
            url: URL to navigate to

        Returns:
            ScrapedDocument; on any error a failed document carrying the
            error message. Elapsed time is recorded either way.
        """
        started = time.perf_counter()
        try:
            await page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self._navigation_timeout_ms,
            )
            if self._settle_seconds > 0:
                await asyncio.sleep(self._settle_seconds)

            html = await page.content()
            title = (await page.title() or "").strip()
            if not title:
                title = await asyncio.to_thread(self._extractor.extract_title, html)
            # bs4 parsing is CPU bound; keep it off the event loop
            content = await asyncio.to_thread(self._extractor.extract, html)
        except Exception as e:
            elapsed = _elapsed_ms(started)
            logfire.warn(
                "Page fetch failed",
                url=url,
                error=str(e),
                error_type=type(e).__name__,
                elapsed_ms=elapsed,
            )
            return ScrapedDocument.failed(url, str(e) or type(e).__name__, elapsed)

        document = ScrapedDocument.succeeded(
            url=url, title=title, raw_content=content, elapsed_time_ms=_elapsed_ms(started)
        )
        logfire.info(
            "Page fetched",
            url=url,
            title=title[:100],
            word_count=document.word_count,
            elapsed_ms=document.elapsed_time_ms,
        )
        return document


class _ProgressTracker:
    """Count finished URLs and report each one to the progress callbacks."""

    def __init__(self, total: int, callbacks: ProgressCallbacks):
        self._total = total
        self._completed = 0
        self._callbacks = callbacks

    def advance(self, url: str) -> None:
        self._completed += 1
        self._callbacks.scraping_progress(self._completed, self._total, url)


class WebScraper:
    """Fetch a batch of URLs concurrently through headless browsers.

    Strategy is chosen once per batch:
    1. Batches of at most max_concurrent_pages URLs use one shared browser
       with a pre-created page per URL.
    2. Larger batches, or a shared browser that fails to start, use a
       bounded browser pool.

    Components (fetcher, launcher) can be injected for testing.
    """

    def __init__(
        self,
        fetcher: PageFetcher | None = None,
        launcher_factory: Callable[[], BrowserLauncher] | None = None,
        headless: bool = True,
        max_concurrent_pages: int = MAX_CONCURRENT_PAGES,
        max_pool_browsers: int = MAX_POOL_BROWSERS,
        scrape_timeout_seconds: float = SCRAPE_TIMEOUT_SECONDS,
        page_timeout_seconds: float = PAGE_DEFAULT_TIMEOUT_SECONDS,
    ):
        """Initialize the web scraper.

        Args:
            fetcher: Page fetcher implementation (defaults to PageFetcher)
            launcher_factory: Creates the browser launcher for one batch
                (defaults to PlaywrightLauncher)
            headless: Headless mode for the default launcher
            max_concurrent_pages: Shared-browser page budget, also the
                concurrency bound of the pool strategy
            max_pool_browsers: Max browsers in the fallback pool
            scrape_timeout_seconds: Timeout around the whole fetch of one URL
            page_timeout_seconds: Default timeout applied to every page
        """
        self._fetcher = fetcher or PageFetcher()
        self._launcher_factory = launcher_factory or functools.partial(
            PlaywrightLauncher, headless=headless
        )
        self._max_concurrent_pages = max_concurrent_pages
        self._max_pool_browsers = max_pool_browsers
        self._scrape_timeout_seconds = scrape_timeout_seconds
        self._page_timeout_seconds = page_timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "WebScraper":
        settings = settings or get_settings()
        return cls(
            fetcher=PageFetcher(
                navigation_timeout_seconds=settings.navigation_timeout_seconds,
                settle_seconds=settings.page_settle_seconds,
            ),
            headless=settings.browser_headless,
            max_concurrent_pages=settings.max_concurrent_pages,
            max_pool_browsers=settings.max_pool_browsers,
            scrape_timeout_seconds=settings.scrape_timeout_seconds,
            page_timeout_seconds=settings.navigation_timeout_seconds,
        )

    async def scrape_urls(
        self, urls: List[str], callbacks: ProgressCallbacks | None = None
    ) -> List[ScrapedDocument]:
        """Scrape every URL, returning one document per URL in input order.

        Args:
            urls: URLs to fetch
            callbacks: Optional progress hooks (on_scraping_progress fires as
                each URL finishes)

        Returns:
            List of ScrapedDocument, successful or failed
        """
        if not urls:
            return []

        tracker = _ProgressTracker(len(urls), callbacks or ProgressCallbacks())
        launcher = self._launcher_factory()
        try:
            with logfire.span("Scraping URLs", url_count=len(urls)):
                if len(urls) <= self._max_concurrent_pages:
                    try:
                        return await self._scrape_with_shared_browser(
                            urls, launcher, tracker
                        )
                    except BrowserInitializationError as e:
                        logfire.warn(
                            "Shared browser unavailable, falling back to browser pool",
                            error=str(e),
                        )
                return await self._scrape_with_pool(urls, launcher, tracker)
        finally:
            try:
                await launcher.stop()
            except Exception as e:
                logfire.warn("Failed to stop browser driver", error=str(e))

    async def _scrape_with_shared_browser(
        self,
        urls: List[str],
        launcher: BrowserLauncher,
        tracker: _ProgressTracker,
    ) -> List[ScrapedDocument]:
        async with SharedBrowserManager(
            launcher,
            max_pages=self._max_concurrent_pages,
            page_timeout_seconds=self._page_timeout_seconds,
        ) as manager:
            await manager.initialize(len(urls))
            logfire.info("Scraping with shared browser", url_count=len(urls))

            async def fetch(index: int, url: str) -> ScrapedDocument:
                page = await manager.get_page(index)
                return await self._fetcher.fetch(page, url)

            results = await asyncio.gather(
                *(
                    self._fetch_with_timeout(url, functools.partial(fetch, index, url), tracker)
                    for index, url in enumerate(urls)
                )
            )
        return list(results)

    async def _scrape_with_pool(
        self,
        urls: List[str],
        launcher: BrowserLauncher,
        tracker: _ProgressTracker,
    ) -> List[ScrapedDocument]:
        semaphore = asyncio.Semaphore(self._max_concurrent_pages)
        async with BrowserPool(
            launcher,
            max_browsers=self._max_pool_browsers,
            page_timeout_seconds=self._page_timeout_seconds,
        ) as pool:
            logfire.info(
                "Scraping with browser pool",
                url_count=len(urls),
                max_browsers=self._max_pool_browsers,
            )

            async def fetch(url: str) -> ScrapedDocument:
                page = await pool.acquire_page()
                try:
                    return await self._fetcher.fetch(page, url)
                finally:
                    await pool.release_page(page)

            async def bounded(url: str) -> ScrapedDocument:
                async with semaphore:
                    return await self._fetch_with_timeout(
                        url, functools.partial(fetch, url), tracker
                    )

            results = await asyncio.gather(*(bounded(url) for url in urls))
        return list(results)

    async def _fetch_with_timeout(
        self,
        url: str,
        operation: Callable[[], Awaitable[ScrapedDocument]],
        tracker: _ProgressTracker,
    ) -> ScrapedDocument:
        """Run one URL's fetch under the per-URL timeout, converting errors to results."""
        started = time.perf_counter()
        try:
            document = await asyncio.wait_for(
                operation(), timeout=self._scrape_timeout_seconds
            )
        except asyncio.TimeoutError:
            logfire.warn(
                "Scrape timed out", url=url, timeout_seconds=self._scrape_timeout_seconds
            )
            document = ScrapedDocument.failed(
                url,
                f"Scrape timed out after {self._scrape_timeout_seconds}s",
                _elapsed_ms(started),
            )
        except Exception as e:
            logfire.warn(
                "Scrape failed",
                url=url,
                error=str(e),
                error_type=type(e).__name__,
            )
            document = ScrapedDocument.failed(
                url, str(e) or type(e).__name__, _elapsed_ms(started)
            )
        tracker.advance(url)
        return document
