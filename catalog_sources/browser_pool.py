"""
Bounded pool of headless Chromium pages (Playwright).

One browser process is launched lazily on first use and shared; each caller
gets its own browser context + page, which is closed when the caller's
`async with` block exits — normally, on error, or on cancellation.

At most `size` pages are open at once. Further callers queue on the
semaphore; the wait counts against whatever timeout the caller wraps around
the `async with` (the scraper uses one budget for wait + navigation + extraction).
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from playwright.async_api import Browser, Page, Playwright, async_playwright

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


class BrowserPool:

    def __init__(self, size: int = 2, headless: bool = True) -> None:
        self._size = max(size, 1)
        self._headless = headless
        self._semaphore = asyncio.Semaphore(self._size)
        self._launch_lock = asyncio.Lock()
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    @property
    def size(self) -> int:
        return self._size

    async def _ensure_browser(self) -> Browser:
        async with self._launch_lock:
            if self._browser is None or not self._browser.is_connected():
                if self._playwright is None:
                    self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(headless=self._headless)
                logger.info("Launched headless Chromium (pool size %d)", self._size)
            return self._browser

    @asynccontextmanager
    async def page(self) -> AsyncIterator[Page]:
        """Borrow a fresh page. Released on every exit path."""
        async with self._semaphore:
            browser = await self._ensure_browser()
            context = await browser.new_context(user_agent=USER_AGENT)
            try:
                yield await context.new_page()
            finally:
                await context.close()

    async def close(self) -> None:
        """Shut down the browser and the Playwright driver."""
        async with self._launch_lock:
            if self._browser is not None:
                await self._browser.close()
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
        logger.info("Browser pool closed.")
