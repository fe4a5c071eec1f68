"""
tests/conftest.py

Shared fakes for the crawl engine tests.

Nothing here touches a real browser, network or clock: sessions replay
scripted responses from a FakeWeb and all sleeping goes through FakeClock,
which advances virtual time instead of waiting.
"""

from __future__ import annotations

import asyncio
import random
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone

import pytest

from jobprobe.config import (
    FailureTrackerSettings,
    LoaderSettings,
    OrchestratorSettings,
    RateLimitSettings,
)
from jobprobe.crawler.collaborators import HtmlParser, NotificationSink, PostScanHook
from jobprobe.crawler.errors import NavigationError
from jobprobe.crawler.failure_tracker import UrlFailureTracker
from jobprobe.crawler.orchestrator import CrawlOrchestrator
from jobprobe.crawler.page_loader import RetryingPageLoader
from jobprobe.crawler.rate_limiter import DomainRateLimiter
from jobprobe.crawler.runtime import RunningFlag
from jobprobe.crawler.session_pool import BrowserSessionPool
from jobprobe.crawler.sessions import BrowserSession, BrowserSessionFactory
from jobprobe.domain.crawl import (
    ParseContext,
    ParseKind,
    ParseOutcome,
    PendingItem,
    PendingItemStatus,
    TargetLink,
    UrlSkippedAlert,
)
from jobprobe.storage.base import CrawlRepository


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------


class FakeClock:
    """Monotonic clock whose sleep() advances time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []
        self.on_sleep: Callable[[float], object] | None = None

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        if self.on_sleep is not None:
            self.on_sleep(seconds)
        self.sleeps.append(seconds)
        self.now += max(0.0, seconds)
        await asyncio.sleep(0)

    def wall(self) -> datetime:
        return datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=self.now)


# ---------------------------------------------------------------------------
# Browser
# ---------------------------------------------------------------------------


@dataclass
class FakeResponse:
    status: int | None = 200
    title: str = "Jobs"
    final_url: str | None = None
    html: str = "<html></html>"
    error: Exception | None = None


class FakeWeb:
    """
    Scripted responses per URL. The last scripted response repeats forever;
    unknown URLs answer 200 with empty HTML.
    """

    def __init__(self) -> None:
        self._responses: dict[str, list[FakeResponse]] = {}
        self.navigations: list[str] = []

    def add(self, url: str, **fields: object) -> None:
        self._responses.setdefault(url, []).append(FakeResponse(**fields))  # type: ignore[arg-type]

    def fail(self, url: str, message: str = "net::ERR_CONNECTION_RESET") -> None:
        self.add(url, error=NavigationError(message))

    def next_response(self, url: str) -> FakeResponse:
        queue = self._responses.get(url)
        if not queue:
            return FakeResponse()
        if len(queue) > 1:
            return queue.pop(0)
        return queue[0]

    def navigation_count(self, url: str) -> int:
        return sum(1 for visited in self.navigations if visited == url)


class FakeSession(BrowserSession):
    def __init__(self, web: FakeWeb) -> None:
        self._web = web
        self._response = FakeResponse()
        self._url = "about:blank"
        self.scroll_fractions: list[float] = []
        self.visited: list[str] = []
        self.closed = False

    async def navigate(self, url: str, *, timeout_seconds: float) -> int | None:
        self._web.navigations.append(url)
        self.visited.append(url)
        await asyncio.sleep(0)
        response = self._web.next_response(url)
        if response.error is not None:
            raise response.error
        self._response = response
        self._url = response.final_url or url
        return response.status

    async def title(self) -> str:
        return self._response.title

    @property
    def current_url(self) -> str:
        return self._url

    async def scroll_scrollables(self, fraction: float) -> None:
        self.scroll_fractions.append(fraction)

    async def html(self) -> str:
        return self._response.html

    async def close(self) -> None:
        self.closed = True


class FakeSessionFactory(BrowserSessionFactory):
    def __init__(self, web: FakeWeb, *, created: int | None = None) -> None:
        self._web = web
        self._created = created
        self.sessions: list[FakeSession] = []
        self.shutdown_called = False

    async def create_sessions(self, count: int) -> list[BrowserSession]:
        total = count if self._created is None else self._created
        self.sessions = [FakeSession(self._web) for _ in range(total)]
        return list(self.sessions)

    async def shutdown(self) -> None:
        self.shutdown_called = True


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


class FakeParser(HtmlParser):
    """
    Listing HTML "items:<url>,<url>" yields new items; description HTML
    "status:<status>" yields the described item; "broken" fails to parse.
    """

    def __init__(self) -> None:
        self.contexts: list[ParseContext] = []

    async def parse(self, html: str, context: ParseContext) -> ParseOutcome:
        self.contexts.append(context)
        if html == "broken":
            return ParseOutcome(parse_failed=True)

        if context.kind == ParseKind.LISTING:
            assert context.link is not None
            urls = html.split(":", 1)[1].split(",") if html.startswith("items:") else []
            return ParseOutcome(
                items=[
                    PendingItem(
                        id=None,
                        external_url=url,
                        site_id=context.link.site_id,
                        link_id=context.link.id,
                        title=f"Role {url}",
                        company_name="Acme",
                    )
                    for url in urls
                    if url
                ]
            )

        assert context.item is not None
        status = html.split(":", 1)[1] if html.startswith("status:") else PendingItemStatus.NEW
        return ParseOutcome(items=[replace(context.item, status=status, description="Full description")])


class InMemoryRepository(CrawlRepository):
    def __init__(self, links: Sequence[TargetLink] = (), items: Sequence[PendingItem] = ()) -> None:
        self.links: dict[int, TargetLink] = {link.id: link for link in links}
        self.items: dict[int, PendingItem] = {}
        self.failure_updates: list[tuple[int, int]] = []
        self.scraped: list[int] = []
        self.updated: list[PendingItem] = []
        self._next_item_id = 1
        self._lock = threading.Lock()
        for item in items:
            self._store_item(item)

    def _store_item(self, item: PendingItem) -> PendingItem:
        item_id = item.id if item.id is not None else self._next_item_id
        self._next_item_id = max(self._next_item_id, item_id) + 1
        stored = replace(item, id=item_id)
        self.items[item_id] = stored
        return stored

    def list_links(self) -> list[TargetLink]:
        return list(self.links.values())

    def get_link(self, link_id: int) -> TargetLink | None:
        return self.links.get(link_id)

    def create_link(self, *, url: str, title: str, site_id: int) -> TargetLink:
        link = TargetLink(id=len(self.links) + 1, url=url, title=title, site_id=site_id)
        self.links[link.id] = link
        return link

    def increase_failure_count(self, link_id: int, failures: int) -> None:
        self.failure_updates.append((link_id, failures))
        self.links[link_id] = replace(self.links[link_id], consecutive_failure_count=failures)

    def mark_link_scraped(self, link_id: int, scraped_at: datetime) -> None:
        self.scraped.append(link_id)
        self.links[link_id] = replace(
            self.links[link_id],
            consecutive_failure_count=0,
            last_scraped_at=scraped_at,
        )

    def add_discovered_items(self, link_id: int, items: Sequence[PendingItem]) -> list[PendingItem]:
        with self._lock:
            known = {item.external_url for item in self.items.values()}
            return [self._store_item(item) for item in items if item.external_url not in known]

    def list_pending_items(self, limit: int) -> list[PendingItem]:
        pending = [item for item in self.items.values() if item.status == PendingItemStatus.PROCESSING]
        return pending[:limit]

    def update_item(self, item: PendingItem) -> PendingItem:
        assert item.id is not None
        with self._lock:
            self.items[item.id] = item
            self.updated.append(item)
        return item


class RecordingNotifier(NotificationSink):
    def __init__(self) -> None:
        self.new_items: list[list[PendingItem]] = []
        self.alerts: list[UrlSkippedAlert] = []

    def notify_new_items(self, items: list[PendingItem]) -> None:
        self.new_items.append(list(items))

    def notify_url_skipped(self, alert: UrlSkippedAlert) -> None:
        self.alerts.append(alert)


class RecordingPostScanHook(PostScanHook):
    def __init__(self) -> None:
        self.calls: list[tuple[list[int], bool]] = []

    async def run(self, new_item_ids: list[int], email_alerts_enabled: bool) -> None:
        self.calls.append((list(new_item_ids), email_alerts_enabled))


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

TEST_RATE_LIMIT_SETTINGS = RateLimitSettings()
TEST_FAILURE_SETTINGS = FailureTrackerSettings()
TEST_LOADER_SETTINGS = LoaderSettings(navigation_max_attempts=3)
TEST_ORCHESTRATOR_SETTINGS = OrchestratorSettings()


# ---------------------------------------------------------------------------
# Assembled engine
# ---------------------------------------------------------------------------


@dataclass
class CrawlHarness:
    clock: FakeClock
    web: FakeWeb
    running: RunningFlag
    rate_limiter: DomainRateLimiter
    tracker: UrlFailureTracker
    normal_pool: BrowserSessionPool
    incognito_pool: BrowserSessionPool
    normal_loader: RetryingPageLoader
    incognito_loader: RetryingPageLoader
    repository: InMemoryRepository
    parser: FakeParser
    notifier: RecordingNotifier
    post_scan_hook: RecordingPostScanHook
    orchestrator: CrawlOrchestrator

    async def start(self) -> None:
        await self.normal_pool.start()
        await self.incognito_pool.start()

    async def close(self) -> None:
        await self.normal_pool.close()
        await self.incognito_pool.close()


def build_harness(
    *,
    repository: InMemoryRepository | None = None,
    loader_settings: LoaderSettings = TEST_LOADER_SETTINGS,
    pool_size: int = 2,
) -> CrawlHarness:
    clock = FakeClock()
    web = FakeWeb()
    running = RunningFlag()
    rng = random.Random(7)
    notifier = RecordingNotifier()
    rate_limiter = DomainRateLimiter(
        settings=TEST_RATE_LIMIT_SETTINGS,
        clock=clock,
        sleep=clock.sleep,
        rng=rng,
        running=running,
    )
    tracker = UrlFailureTracker(
        settings=TEST_FAILURE_SETTINGS,
        on_alert=notifier.notify_url_skipped,
        clock=clock,
        wall_clock=clock.wall,
    )
    normal_pool = BrowserSessionPool(
        name="normal",
        factory=FakeSessionFactory(web),
        size=pool_size,
        sleep=clock.sleep,
    )
    incognito_pool = BrowserSessionPool(
        name="incognito",
        factory=FakeSessionFactory(web),
        size=pool_size,
        sleep=clock.sleep,
    )
    normal_loader = RetryingPageLoader(
        pool=normal_pool,
        rate_limiter=rate_limiter,
        settings=loader_settings,
        running=running,
        rng=rng,
        sleep=clock.sleep,
    )
    incognito_loader = RetryingPageLoader(
        pool=incognito_pool,
        rate_limiter=rate_limiter,
        settings=loader_settings,
        running=running,
        rng=rng,
        sleep=clock.sleep,
    )
    repository = repository or InMemoryRepository()
    parser = FakeParser()
    post_scan_hook = RecordingPostScanHook()
    orchestrator = CrawlOrchestrator(
        repository=repository,
        parser=parser,
        notifier=notifier,
        post_scan_hook=post_scan_hook,
        normal_loader=normal_loader,
        incognito_loader=incognito_loader,
        failure_tracker=tracker,
        running=running,
        settings=TEST_ORCHESTRATOR_SETTINGS,
        rng=rng,
        sleep=clock.sleep,
        clock=clock,
        wall_clock=clock.wall,
    )
    return CrawlHarness(
        clock=clock,
        web=web,
        running=running,
        rate_limiter=rate_limiter,
        tracker=tracker,
        normal_pool=normal_pool,
        incognito_pool=incognito_pool,
        normal_loader=normal_loader,
        incognito_loader=incognito_loader,
        repository=repository,
        parser=parser,
        notifier=notifier,
        post_scan_hook=post_scan_hook,
        orchestrator=orchestrator,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def web() -> FakeWeb:
    return FakeWeb()


@pytest.fixture()
def harness_factory():
    """Return build_harness so tests can pass their own repository or settings."""
    return build_harness
