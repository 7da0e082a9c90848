"""Tests for shared browser and browser pool management."""

import asyncio

import pytest

from fakes import FakeLauncher
from research_pipeline.services.browser_manager import (
    BrowserInitializationError,
    BrowserManagerError,
    BrowserPool,
    PageUnavailableError,
    SharedBrowserManager,
)


class TestSharedBrowserManager:
    """Test SharedBrowserManager page provisioning and teardown."""

    @pytest.mark.asyncio
    async def test_initialize_creates_one_page_per_url(self):
        launcher = FakeLauncher()
        manager = SharedBrowserManager(launcher, max_pages=5, page_timeout_seconds=7)

        count = await manager.initialize(3)

        assert count == 3
        assert manager.page_count == 3
        assert launcher.launch_count == 1
        pages = launcher.all_pages
        assert len(pages) == 3
        assert all(page.default_timeout == 7000 for page in pages)

    @pytest.mark.asyncio
    async def test_initialize_caps_pages_at_max(self):
        manager = SharedBrowserManager(FakeLauncher(), max_pages=5)

        assert await manager.initialize(12) == 5

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self):
        launcher = FakeLauncher()
        manager = SharedBrowserManager(launcher, max_pages=5)

        await manager.initialize(2)
        assert await manager.initialize(4) == 2
        assert launcher.launch_count == 1

    @pytest.mark.asyncio
    async def test_initialize_zero_urls_does_not_launch(self):
        launcher = FakeLauncher()
        manager = SharedBrowserManager(launcher)

        assert await manager.initialize(0) == 0
        assert launcher.launch_count == 0

    @pytest.mark.asyncio
    async def test_launch_failure_raises_initialization_error(self):
        manager = SharedBrowserManager(FakeLauncher(fail_launches=1))

        with pytest.raises(BrowserInitializationError, match="Failed to launch browser"):
            await manager.initialize(2)

    @pytest.mark.asyncio
    async def test_all_pages_failing_closes_and_raises(self):
        launcher = FakeLauncher(failing_pages=10)
        manager = SharedBrowserManager(launcher, max_pages=3)

        with pytest.raises(BrowserInitializationError, match="no page"):
            await manager.initialize(3)

        assert manager.is_closed
        assert launcher.browsers[0].closed

    @pytest.mark.asyncio
    async def test_partial_page_failure_leaves_unusable_slot(self):
        launcher = FakeLauncher(failing_pages=1)
        manager = SharedBrowserManager(launcher, max_pages=3)

        assert await manager.initialize(3) == 3

        with pytest.raises(PageUnavailableError, match="unusable"):
            await manager.get_page(0)
        page = await manager.get_page(1)
        assert page is launcher.all_pages[0]

    @pytest.mark.asyncio
    async def test_get_page_returns_distinct_pages(self):
        manager = SharedBrowserManager(FakeLauncher(), max_pages=5)
        await manager.initialize(3)

        pages = [await manager.get_page(i) for i in range(3)]

        assert len({id(page) for page in pages}) == 3

    @pytest.mark.asyncio
    async def test_get_page_out_of_range(self):
        manager = SharedBrowserManager(FakeLauncher(), max_pages=5)
        await manager.initialize(2)

        with pytest.raises(PageUnavailableError, match="out of range"):
            await manager.get_page(2)
        # Also usable as an IndexError by callers
        with pytest.raises(IndexError):
            await manager.get_page(-1)

    @pytest.mark.asyncio
    async def test_get_page_rejects_closed_page(self):
        launcher = FakeLauncher()
        manager = SharedBrowserManager(launcher, max_pages=2)
        await manager.initialize(2)
        launcher.all_pages[1].closed = True

        with pytest.raises(PageUnavailableError):
            await manager.get_page(1)

    @pytest.mark.asyncio
    async def test_close_all_is_idempotent(self):
        launcher = FakeLauncher()
        manager = SharedBrowserManager(launcher, max_pages=2)
        await manager.initialize(2)

        await manager.close_all()
        await manager.close_all()

        assert manager.is_closed
        assert all(page.closed for page in launcher.all_pages)
        assert launcher.browsers[0].closed
        # Injected launchers belong to the caller
        assert launcher.stop_count == 0

    @pytest.mark.asyncio
    async def test_close_errors_are_logged_not_raised(self, mock_logfire):
        launcher = FakeLauncher()
        manager = SharedBrowserManager(launcher, max_pages=2)
        await manager.initialize(2)
        launcher.all_pages[0].close_error = RuntimeError("already detached")

        await manager.close_all()

        assert launcher.browsers[0].closed
        assert any(
            call.args[0] == "Failed to close page" for call in mock_logfire.warn.call_args_list
        )

    @pytest.mark.asyncio
    async def test_use_after_close(self):
        manager = SharedBrowserManager(FakeLauncher(), max_pages=2)
        await manager.initialize(2)
        await manager.close_all()

        with pytest.raises(PageUnavailableError, match="closed"):
            await manager.get_page(0)
        with pytest.raises(BrowserInitializationError):
            await manager.initialize(2)

    @pytest.mark.asyncio
    async def test_context_manager_closes(self):
        launcher = FakeLauncher()

        async with SharedBrowserManager(launcher, max_pages=2) as manager:
            await manager.initialize(1)

        assert manager.is_closed
        assert launcher.browsers[0].closed

    @pytest.mark.asyncio
    async def test_concurrent_get_page_and_close(self):
        manager = SharedBrowserManager(FakeLauncher(), max_pages=5)
        await manager.initialize(5)

        results = await asyncio.gather(
            *(manager.get_page(i) for i in range(5)),
            manager.close_all(),
            return_exceptions=True,
        )

        # Every lookup either got a page or saw the closed manager
        for result in results[:5]:
            assert not isinstance(result, Exception) or isinstance(
                result, PageUnavailableError
            )
        assert manager.is_closed


class TestBrowserPool:
    """Test BrowserPool page acquisition and pruning."""

    @pytest.mark.asyncio
    async def test_launches_lazily_up_to_bound(self):
        launcher = FakeLauncher()
        pool = BrowserPool(launcher, max_browsers=2)

        for _ in range(5):
            await pool.acquire_page()

        assert pool.size == 2
        assert launcher.launch_count == 2

    @pytest.mark.asyncio
    async def test_pages_spread_round_robin(self):
        launcher = FakeLauncher()
        pool = BrowserPool(launcher, max_browsers=2)

        for _ in range(4):
            await pool.acquire_page()

        assert [len(browser.pages) for browser in launcher.browsers] == [2, 2]

    @pytest.mark.asyncio
    async def test_first_launch_failure_raises(self):
        pool = BrowserPool(FakeLauncher(fail_launches=5), max_browsers=2)

        with pytest.raises(BrowserInitializationError):
            await pool.acquire_page()

    @pytest.mark.asyncio
    async def test_later_launch_failure_reuses_existing(self):
        launcher = FakeLauncher()
        pool = BrowserPool(launcher, max_browsers=3)
        await pool.acquire_page()
        launcher.fail_launches = 1

        page = await pool.acquire_page()

        assert page is not None
        assert pool.size == 1

    @pytest.mark.asyncio
    async def test_prunes_disconnected_browsers(self):
        launcher = FakeLauncher()
        pool = BrowserPool(launcher, max_browsers=1)
        await pool.acquire_page()
        launcher.browsers[0].connected = False

        await pool.acquire_page()

        assert pool.size == 1
        assert launcher.launch_count == 2

    @pytest.mark.asyncio
    async def test_new_page_failure_is_page_unavailable(self):
        pool = BrowserPool(FakeLauncher(failing_pages=1), max_browsers=1)

        with pytest.raises(PageUnavailableError):
            await pool.acquire_page()

    @pytest.mark.asyncio
    async def test_release_closes_page(self):
        pool = BrowserPool(FakeLauncher(), max_browsers=1)
        page = await pool.acquire_page()

        await pool.release_page(page)

        assert page.closed

    @pytest.mark.asyncio
    async def test_close_all_idempotent_and_blocks_acquire(self):
        launcher = FakeLauncher()
        async with BrowserPool(launcher, max_browsers=2) as pool:
            await pool.acquire_page()
            await pool.acquire_page()

        await pool.close_all()

        assert pool.is_closed
        assert all(browser.closed for browser in launcher.browsers)
        with pytest.raises(BrowserManagerError):
            await pool.acquire_page()
