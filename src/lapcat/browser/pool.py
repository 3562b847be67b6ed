"""Bounded pool of remote browser sessions.

One session is one Playwright page bound to one URL. ``SessionPool.session``
holds a pool slot for exactly as long as the page is open, so a task that
leaves the ``async with`` block has already given its slot back before it
waits on any subtasks it spawned.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, Protocol

from playwright.async_api import Browser, Page, async_playwright
from playwright.async_api import Error as PlaywrightError

from ..config.settings import CrawlSettings
from ..errors import TransportFailure
from ..utils.logging import get_logger
from ..utils.retry import RetryPolicy, Sleep

logger = get_logger(__name__)

VIEWPORT = {"width": 1920, "height": 1080}

_LAUNCH_ARGS = [
    "--disable-gpu",
    "--no-sandbox",
    "--disable-dev-shm-usage",
]


class Session(Protocol):
    url: str

    async def find_one(self, selector: str, retry: Optional[RetryPolicy] = None) -> Optional[Any]: ...

    async def find_all(self, selector: str) -> List[Any]: ...

    async def evaluate(self, script: str, arg: Any = None) -> Any: ...

    async def content(self) -> str: ...

    async def close(self) -> None: ...


SessionOpener = Callable[[str], Awaitable[Session]]


class PageSession:
    """A single browser window navigated to ``url``."""

    def __init__(self, page: Page, url: str, sleep: Sleep = asyncio.sleep) -> None:
        self._page = page
        self._sleep = sleep
        self._closed = False
        self.url = url

    @property
    def closed(self) -> bool:
        return self._closed

    async def find_one(self, selector: str, retry: Optional[RetryPolicy] = None):
        """First element matching ``selector`` or ``None``."""
        try:
            if retry is None:
                return await self._page.query_selector(selector)
            return await retry.attempt(lambda: self._page.query_selector(selector), sleep=self._sleep)
        except PlaywrightError as exc:
            raise TransportFailure(f"find {selector!r} on {self.url}: {exc}") from exc

    async def find_all(self, selector: str) -> list:
        try:
            return await self._page.query_selector_all(selector)
        except PlaywrightError as exc:
            raise TransportFailure(f"find_all {selector!r} on {self.url}: {exc}") from exc

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        try:
            return await self._page.evaluate(script, arg)
        except PlaywrightError as exc:
            raise TransportFailure(f"script failed on {self.url}: {exc}") from exc

    async def content(self) -> str:
        try:
            return await self._page.content()
        except PlaywrightError as exc:
            raise TransportFailure(f"content of {self.url}: {exc}") from exc

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._page.close()
        except PlaywrightError as exc:
            # target already gone; the slot is released either way
            logger.warning("Closing %s failed: %s", self.url, exc)


class PlaywrightSessionOpener:
    """Opens a fresh page per session on a shared browser."""

    def __init__(self, browser: Browser, timeout_ms: int = 60000) -> None:
        self._browser = browser
        self._timeout_ms = timeout_ms

    async def __call__(self, url: str) -> PageSession:
        try:
            page = await self._browser.new_page(viewport=VIEWPORT)
        except PlaywrightError as exc:
            raise TransportFailure(f"cannot open window for {url}: {exc}") from exc

        session = PageSession(page, url)
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=self._timeout_ms)
        except PlaywrightError as exc:
            await session.close()
            raise TransportFailure(f"cannot load {url}: {exc}") from exc
        return session


@asynccontextmanager
async def open_browser(settings: CrawlSettings) -> AsyncIterator[Browser]:
    """Launch headless Chromium, or attach to ``settings.browser_endpoint`` over CDP."""
    async with async_playwright() as pw:
        try:
            if settings.browser_endpoint:
                logger.info("Connecting to browser at %s", settings.browser_endpoint)
                browser = await pw.chromium.connect_over_cdp(settings.browser_endpoint)
            else:
                browser = await pw.chromium.launch(headless=settings.headless, args=_LAUNCH_ARGS)
        except PlaywrightError as exc:
            raise TransportFailure(f"browser unavailable: {exc}") from exc
        try:
            yield browser
        finally:
            await browser.close()


class SessionPool:
    """At most ``limit`` sessions open at once; waiters suspend, never block."""

    def __init__(self, opener: SessionOpener, limit: int = 10) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self._opener = opener
        self._semaphore = asyncio.Semaphore(limit)
        self.limit = limit
        self.in_use = 0
        self.peak = 0

    @asynccontextmanager
    async def session(self, url: str) -> AsyncIterator[Session]:
        async with self._semaphore:
            session = await self._opener(url)
            self.in_use += 1
            self.peak = max(self.peak, self.in_use)
            try:
                yield session
            finally:
                self.in_use -= 1
                await session.close()
