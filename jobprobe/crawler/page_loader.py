"""
Retrying page loader: rate-limited navigation, human-like scrolling and
content extraction with independent retry budgets.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from jobprobe.config import LoaderSettings
from jobprobe.crawler.errors import AuthWallError, CrawlStoppedError, RateLimitedError
from jobprobe.crawler.logging_utils import log_event
from jobprobe.crawler.rate_limiter import DomainRateLimiter
from jobprobe.crawler.runtime import RunningFlag
from jobprobe.crawler.session_pool import BrowserSessionPool
from jobprobe.crawler.sessions import BrowserSession

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ContentSnapshot:
    """
    Rendered HTML handed to the content callback.
    """

    url: str
    html: str
    retry_count: int
    max_retries: int


ContentCallback = Callable[[ContentSnapshot], Awaitable[T]]


class RetryingPageLoader:
    """
    Loads one URL into a pooled browser session.

    The content callback runs while the session is still held, so a
    content-retry re-reads the same already-rendered page.
    """

    def __init__(
        self,
        *,
        pool: BrowserSessionPool,
        rate_limiter: DomainRateLimiter,
        settings: LoaderSettings,
        running: RunningFlag,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._pool = pool
        self._rate_limiter = rate_limiter
        self._settings = settings
        self._running = running
        self._rng = rng or random.Random()
        self._sleep = sleep

    @property
    def pool(self) -> BrowserSessionPool:
        return self._pool

    async def load(
        self,
        url: str,
        *,
        scroll_passes: int,
        on_content_ready: ContentCallback[T],
        empty_result: Any = None,
    ) -> T:
        """
        Load `url` and return whatever `on_content_ready` returns.

        Returns `empty_result` instead of raising once shutdown has begun.
        """

        if not self._running.is_running:
            return empty_result

        async def _run(session: BrowserSession) -> T:
            return await self._load_in_session(session, url, scroll_passes, on_content_ready)

        try:
            return await self._pool.with_session(_run)
        except Exception as exc:
            if not self._running.is_running:
                log_event(
                    logger,
                    logging.INFO,
                    "page_load_abandoned",
                    url=url,
                    reason="shutdown",
                    error=str(exc),
                )
                return empty_result
            raise

    async def _load_in_session(
        self,
        session: BrowserSession,
        url: str,
        scroll_passes: int,
        on_content_ready: ContentCallback[T],
    ) -> T:
        log_event(logger, logging.INFO, "page_load_started", url=url, pool=self._pool.name)

        if self._settings.renavigate_on_parse_failure:
            # An exhausted content-retry bubbles into the navigation loop and
            # triggers a fresh navigation.
            async for attempt in self._navigation_retrying(url):
                with attempt:
                    await self._navigate_once(session, url, scroll_passes)
                    result = await self._read_content(session, url, on_content_ready)
        else:
            async for attempt in self._navigation_retrying(url):
                with attempt:
                    await self._navigate_once(session, url, scroll_passes)
            result = await self._read_content(session, url, on_content_ready)

        log_event(logger, logging.INFO, "page_load_finished", url=url, pool=self._pool.name)
        return result

    async def _navigate_once(self, session: BrowserSession, url: str, scroll_passes: int) -> None:
        await self._rate_limiter.await_slot(url)
        self._ensure_running(url)
        status = await session.navigate(url, timeout_seconds=self._settings.navigation_timeout_seconds)

        title = (await session.title() or "").strip().lower()
        challenged = any(title.startswith(prefix) for prefix in self._settings.challenge_title_prefixes)
        if status == 429 or challenged:
            wait_seconds = self._rng.uniform(
                self._settings.rate_limited_wait_min_seconds,
                self._settings.rate_limited_wait_max_seconds,
            )
            log_event(
                logger,
                logging.WARNING,
                "page_rate_limited",
                url=url,
                status=status,
                challenge=challenged,
                wait_seconds=round(wait_seconds, 3),
            )
            await self._pause(url, wait_seconds)
            raise RateLimitedError(f"rate limit exceeded: {url}")

        self._check_auth_wall(session)

        for index in range(scroll_passes):
            fraction = (
                self._settings.partial_scroll_fraction
                if self._rng.random() < self._settings.partial_scroll_probability
                else 1.0
            )
            await session.scroll_scrollables(fraction)
            low, high = (
                self._settings.first_scroll_delay_range
                if index == 0
                else self._settings.scroll_delay_range
            )
            await self._pause(url, self._rng.uniform(low, high))
            self._check_auth_wall(session)

    async def _read_content(
        self,
        session: BrowserSession,
        url: str,
        on_content_ready: ContentCallback[T],
    ) -> T:
        max_retries = self._settings.content_max_retries
        retrying = AsyncRetrying(
            stop=stop_after_attempt(1 + max_retries),
            wait=wait_random_exponential(
                multiplier=self._settings.content_start_delay_seconds,
                max=self._settings.content_max_delay_seconds,
            ),
            retry=retry_if_exception(self._should_retry),
            before_sleep=self._log_retry("content", url),
            sleep=self._interruptible_sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                html = await session.html()
                result = await on_content_ready(
                    ContentSnapshot(
                        url=url,
                        html=html,
                        retry_count=attempt.retry_state.attempt_number - 1,
                        max_retries=max_retries,
                    )
                )
        return result

    def _navigation_retrying(self, url: str) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self._settings.navigation_max_attempts),
            wait=wait_random_exponential(
                multiplier=self._settings.navigation_start_delay_seconds,
                max=self._settings.navigation_max_delay_seconds,
            ),
            retry=retry_if_exception(self._should_retry),
            before_sleep=self._log_retry("navigation", url),
            sleep=self._interruptible_sleep,
            reraise=True,
        )

    async def _interruptible_sleep(self, seconds: float) -> None:
        await self._running.sleep(seconds, self._sleep)

    async def _pause(self, url: str, seconds: float) -> None:
        await self._running.sleep(seconds, self._sleep)
        self._ensure_running(url)

    def _ensure_running(self, url: str) -> None:
        if not self._running.is_running:
            raise CrawlStoppedError(f"shutdown in progress: {url}")

    def _should_retry(self, exc: BaseException) -> bool:
        if isinstance(exc, (AuthWallError, CrawlStoppedError)):
            return False
        return self._running.is_running

    def _check_auth_wall(self, session: BrowserSession) -> None:
        final_url = session.current_url or ""
        lowered = final_url.lower()
        if any(pattern in lowered for pattern in self._settings.auth_wall_patterns):
            log_event(logger, logging.DEBUG, "page_authwall_detected", url=final_url)
            raise AuthWallError(final_url)

    @staticmethod
    def _log_retry(phase: str, url: str) -> Callable[[RetryCallState], None]:
        def _before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            log_event(
                logger,
                logging.DEBUG,
                "page_load_retry",
                phase=phase,
                url=url,
                attempt=retry_state.attempt_number,
                wait_seconds=round(retry_state.upcoming_sleep, 3),
                error=str(error) if error else None,
            )

        return _before_sleep
