"""
jobprobe/services/crawl_service.py

Wires the crawl engine, its collaborators and the scheduler together.
"""

from __future__ import annotations

import asyncio
import logging

from jobprobe.config import (
    get_browser_settings,
    get_failure_tracker_settings,
    get_loader_settings,
    get_orchestrator_settings,
    get_parser_api_settings,
    get_rate_limit_settings,
    get_scanner_defaults,
)
from jobprobe.connectors.parser_api import ParserApiClient
from jobprobe.crawler.collaborators import (
    HtmlParser,
    NotificationSink,
    PostScanHook,
    PowerManagementHook,
    SettingsStore,
)
from jobprobe.crawler.failure_tracker import UrlFailureTracker
from jobprobe.crawler.notifications import LoggingNotificationSink
from jobprobe.crawler.orchestrator import CrawlOrchestrator
from jobprobe.crawler.page_loader import RetryingPageLoader
from jobprobe.crawler.power import SleepInhibitor
from jobprobe.crawler.rate_limiter import DomainRateLimiter
from jobprobe.crawler.runtime import RunningFlag
from jobprobe.crawler.session_pool import BrowserSessionPool
from jobprobe.crawler.sessions import BrowserSessionFactory, PlaywrightSessionFactory
from jobprobe.domain.crawl import TargetLink
from jobprobe.scheduler.jobs import ScanScheduler
from jobprobe.storage.base import CrawlRepository
from jobprobe.storage.settings_store import JsonSettingsStore
from jobprobe.storage.sqlalchemy_storage import SQLAlchemyCrawlRepository

logger = logging.getLogger(__name__)


class CrawlService:
    """
    Owns the long-lived crawl components for one process.
    """

    def __init__(
        self,
        *,
        repository: CrawlRepository,
        parser: HtmlParser,
        post_scan_hook: PostScanHook,
        notifier: NotificationSink,
        settings_store: SettingsStore,
        power_hook: PowerManagementHook,
        normal_factory: BrowserSessionFactory,
        incognito_factory: BrowserSessionFactory,
    ) -> None:
        browser_settings = get_browser_settings()
        loader_settings = get_loader_settings()

        self.running = RunningFlag()
        self.rate_limiter = DomainRateLimiter(settings=get_rate_limit_settings(), running=self.running)
        self.failure_tracker = UrlFailureTracker(
            settings=get_failure_tracker_settings(),
            on_alert=notifier.notify_url_skipped,
        )
        self.normal_pool = BrowserSessionPool(
            name="normal",
            factory=normal_factory,
            size=browser_settings.normal_pool_size,
            close_grace_seconds=browser_settings.close_grace_seconds,
        )
        self.incognito_pool = BrowserSessionPool(
            name="incognito",
            factory=incognito_factory,
            size=browser_settings.incognito_pool_size,
            close_grace_seconds=browser_settings.close_grace_seconds,
        )
        self.orchestrator = CrawlOrchestrator(
            repository=repository,
            parser=parser,
            notifier=notifier,
            post_scan_hook=post_scan_hook,
            normal_loader=RetryingPageLoader(
                pool=self.normal_pool,
                rate_limiter=self.rate_limiter,
                settings=loader_settings,
                running=self.running,
            ),
            incognito_loader=RetryingPageLoader(
                pool=self.incognito_pool,
                rate_limiter=self.rate_limiter,
                settings=loader_settings,
                running=self.running,
            ),
            failure_tracker=self.failure_tracker,
            running=self.running,
            settings=get_orchestrator_settings(),
        )
        self.scheduler = ScanScheduler(
            orchestrator=self.orchestrator,
            settings_store=settings_store,
            power_hook=power_hook,
            notifier=notifier,
            timezone=get_scanner_defaults().timezone,
        )
        self.repository = repository
        self._parser = parser
        self._started = False

    async def start(self, *, schedule: bool = True) -> None:
        """
        Create browser sessions and, unless `schedule` is False, start the cron job.
        """

        if self._started:
            return
        await asyncio.gather(self.normal_pool.start(), self.incognito_pool.start())
        self.rate_limiter.start_sweeper()
        if schedule:
            self.scheduler.start()
        self._started = True
        logger.info("Crawl service started schedule=%s", schedule)

    async def get_link(self, link_id: int) -> TargetLink:
        link = await asyncio.to_thread(self.repository.get_link, link_id)
        if link is None:
            raise LookupError(f"link not found: {link_id}")
        return link

    async def close(self) -> None:
        """
        Stop scheduling, let in-flight work drain, then release browsers.
        """

        self.scheduler.shutdown()
        self.running.stop()
        await asyncio.gather(self.normal_pool.close(), self.incognito_pool.close())
        await self.rate_limiter.stop_sweeper()
        if isinstance(self._parser, ParserApiClient):
            self._parser.close()
        self._started = False
        logger.info("Crawl service closed")


def build_crawl_service() -> CrawlService:
    """
    Build the crawl service from environment configuration.
    """

    from db.session import SessionLocal

    browser_settings = get_browser_settings()
    parser = ParserApiClient(settings=get_parser_api_settings())
    return CrawlService(
        repository=SQLAlchemyCrawlRepository(session_factory=SessionLocal),
        parser=parser,
        post_scan_hook=parser,
        notifier=LoggingNotificationSink(),
        settings_store=JsonSettingsStore(get_scanner_defaults().settings_path),
        power_hook=SleepInhibitor(),
        normal_factory=PlaywrightSessionFactory(settings=browser_settings, incognito=False),
        incognito_factory=PlaywrightSessionFactory(settings=browser_settings, incognito=True),
    )
