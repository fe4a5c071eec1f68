"""
Headless browser session abstraction and its Playwright implementation.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    Route,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from jobprobe.config import BrowserSettings
from jobprobe.crawler.errors import NavigationError
from jobprobe.crawler.logging_utils import log_event

logger = logging.getLogger(__name__)

SCROLL_SCROLLABLES_SCRIPT = """
(fraction) => {
  Array.from(document.querySelectorAll('*'))
    .filter((el) => el.scrollHeight > el.clientHeight)
    .forEach((el) => {
      el.scrollTo({ top: el.scrollHeight * fraction, behavior: 'smooth' });
    });
}
"""

INNER_HTML_SCRIPT = "() => document.documentElement.innerHTML"


class BrowserSession(ABC):
    """
    One browser tab owned exclusively by a single task while in use.
    """

    @abstractmethod
    async def navigate(self, url: str, *, timeout_seconds: float) -> int | None:
        """
        Navigate to `url` and return the main document's HTTP status, if any.
        """

    @abstractmethod
    async def title(self) -> str:
        """
        Current document title.
        """

    @property
    @abstractmethod
    def current_url(self) -> str:
        """
        URL after redirects.
        """

    @abstractmethod
    async def scroll_scrollables(self, fraction: float) -> None:
        """
        Scroll every scrollable element to `fraction` of its height.
        """

    @abstractmethod
    async def html(self) -> str:
        """
        Rendered HTML of the current document.
        """

    @abstractmethod
    async def close(self) -> None:
        """
        Release the underlying browser resources.
        """


class BrowserSessionFactory(ABC):
    """
    Creates the fixed set of sessions backing one pool.
    """

    @abstractmethod
    async def create_sessions(self, count: int) -> list[BrowserSession]:
        """
        Create exactly `count` sessions.
        """

    @abstractmethod
    async def shutdown(self) -> None:
        """
        Tear down shared browser state after all sessions are closed.
        """


class PlaywrightSession(BrowserSession):
    def __init__(self, page: Page, *, context: BrowserContext | None = None) -> None:
        self._page = page
        self._context = context

    async def navigate(self, url: str, *, timeout_seconds: float) -> int | None:
        try:
            response = await self._page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=timeout_seconds * 1000,
            )
        except PlaywrightTimeoutError as exc:
            raise NavigationError(f"navigation timed out: {url}") from exc
        except PlaywrightError as exc:
            raise NavigationError(f"navigation failed: {url}: {exc.message}") from exc
        return response.status if response is not None else None

    async def title(self) -> str:
        try:
            return await self._page.title()
        except PlaywrightError as exc:
            raise NavigationError(f"unable to read title: {exc.message}") from exc

    @property
    def current_url(self) -> str:
        return self._page.url

    async def scroll_scrollables(self, fraction: float) -> None:
        try:
            await self._page.evaluate(SCROLL_SCROLLABLES_SCRIPT, fraction)
        except PlaywrightError as exc:
            raise NavigationError(f"scroll failed: {exc.message}") from exc

    async def html(self) -> str:
        try:
            return await self._page.evaluate(INNER_HTML_SCRIPT)
        except PlaywrightError as exc:
            raise NavigationError(f"unable to read html: {exc.message}") from exc

    async def close(self) -> None:
        if self._context is not None:
            await self._context.close()
        else:
            await self._page.close()


class PlaywrightSessionFactory(BrowserSessionFactory):
    """
    Chromium sessions.

    Normal mode shares one persistent profile between all tabs so logins and
    cookies survive restarts. Incognito mode gives every slot its own
    throwaway context with no cookies.
    """

    def __init__(self, *, settings: BrowserSettings, incognito: bool) -> None:
        self._settings = settings
        self._incognito = incognito
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._persistent_context: BrowserContext | None = None

    async def create_sessions(self, count: int) -> list[BrowserSession]:
        self._playwright = await async_playwright().start()
        viewport = {
            "width": self._settings.viewport_width,
            "height": self._settings.viewport_height,
        }

        sessions: list[BrowserSession] = []
        if self._incognito:
            self._browser = await self._playwright.chromium.launch(headless=self._settings.headless)
            for _ in range(count):
                context = await self._browser.new_context(viewport=viewport)
                await context.route("**/*", self._block_unwanted_requests)
                page = await context.new_page()
                sessions.append(PlaywrightSession(page, context=context))
        else:
            user_data_dir = Path(self._settings.user_data_dir)
            user_data_dir.mkdir(parents=True, exist_ok=True)
            self._persistent_context = await self._playwright.chromium.launch_persistent_context(
                str(user_data_dir),
                headless=self._settings.headless,
                viewport=viewport,
            )
            await self._persistent_context.route("**/*", self._block_unwanted_requests)
            pages = list(self._persistent_context.pages)
            while len(pages) < count:
                pages.append(await self._persistent_context.new_page())
            sessions.extend(PlaywrightSession(page) for page in pages[:count])

        log_event(
            logger,
            logging.INFO,
            "browser_sessions_created",
            count=count,
            incognito=self._incognito,
            headless=self._settings.headless,
        )
        return sessions

    async def shutdown(self) -> None:
        if self._persistent_context is not None:
            await self._persistent_context.close()
            self._persistent_context = None
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def _block_unwanted_requests(self, route: Route) -> None:
        # LinkedIn's passkey request opens a native prompt that stalls the tab.
        request_url = route.request.url.lower()
        if any(pattern in request_url for pattern in self._settings.blocked_url_patterns):
            await route.abort()
            return
        await route.continue_()
