"""
jobprobe/crawler/orchestrator.py

Scan cycle coordination: target links first, then pending item
descriptions, then the post-scan hook and notifications.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import datetime, timezone

from jobprobe.config import OrchestratorSettings
from jobprobe.crawler.collaborators import HtmlParser, NotificationSink, PostScanHook
from jobprobe.crawler.errors import ParseFailureError
from jobprobe.crawler.failure_tracker import UrlFailureTracker
from jobprobe.crawler.logging_utils import log_event
from jobprobe.crawler.page_loader import ContentSnapshot, RetryingPageLoader
from jobprobe.crawler.runtime import RunningFlag
from jobprobe.domain.crawl import (
    ParseContext,
    ParseKind,
    PendingItem,
    PendingItemStatus,
    ScannerSettings,
    ScanSummary,
    TargetLink,
)
from jobprobe.storage.base import CrawlRepository

logger = logging.getLogger(__name__)

ITEM_BATCH_SIZE = 10

OUTCOME_SCANNED = "scanned"
OUTCOME_SKIPPED = "skipped"
OUTCOME_FAILED = "failed"
OUTCOME_ABORTED = "aborted"


class CrawlOrchestrator:
    """
    Runs scan cycles. At most one scheduled cycle runs at a time; a
    scheduled trigger that fires while a cycle is active is dropped.
    """

    def __init__(
        self,
        *,
        repository: CrawlRepository,
        parser: HtmlParser,
        notifier: NotificationSink,
        post_scan_hook: PostScanHook,
        normal_loader: RetryingPageLoader,
        incognito_loader: RetryingPageLoader,
        failure_tracker: UrlFailureTracker,
        running: RunningFlag,
        settings: OrchestratorSettings,
        scanner_settings: ScannerSettings | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._repository = repository
        self._parser = parser
        self._notifier = notifier
        self._post_scan_hook = post_scan_hook
        self._normal_loader = normal_loader
        self._incognito_loader = incognito_loader
        self._failure_tracker = failure_tracker
        self._running = running
        self._settings = settings
        self.scanner_settings = scanner_settings or ScannerSettings()
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._clock = clock
        self._wall_clock = wall_clock
        self._active_scans = 0
        self.last_summary: ScanSummary | None = None

    @property
    def active_scans(self) -> int:
        return self._active_scans

    def is_scanning(self) -> bool:
        return self._active_scans > 0

    async def scan_all(self) -> ScanSummary | None:
        """
        Scan every stored link. Returns None when a cycle is already running.
        """

        if self.is_scanning():
            log_event(
                logger,
                logging.INFO,
                "scan_skipped",
                reason="scan_in_progress",
                active_scans=self._active_scans,
            )
            return None

        self._active_scans += 1
        try:
            try:
                links = await asyncio.to_thread(self._repository.list_links)
            except Exception as exc:  # noqa: BLE001
                log_event(logger, logging.ERROR, "scan_failed", stage="list_links", error=str(exc))
                return self._finish(ScanSummary(0, 0, 0, 0, 0, 0, 0, status="failed"))
            log_event(logger, logging.INFO, "scan_links_found", links_count=len(links))
            return await self._run_cycle(links, send_notification=True)
        finally:
            self._active_scans -= 1

    async def scan_links(
        self,
        links: list[TargetLink],
        send_notification: bool = True,
    ) -> ScanSummary:
        self._active_scans += 1
        try:
            return await self._run_cycle(links, send_notification=send_notification)
        finally:
            self._active_scans -= 1

    async def scan_link(self, link_id: int) -> ScanSummary:
        """
        Re-scan a single link on demand.
        """

        link = await asyncio.to_thread(self._repository.get_link, link_id)
        if link is None:
            raise LookupError(f"link not found: {link_id}")
        return await self.scan_links([link])

    async def scan_items(self, items: list[PendingItem]) -> list[PendingItem]:
        """
        Fetch descriptions for `items`. Returns them in input order; items that
        were skipped or failed come back unchanged.
        """

        results = await self._scan_items_with_outcomes(items)
        return [item for item, _ in results]

    async def _run_cycle(self, links: list[TargetLink], *, send_notification: bool) -> ScanSummary:
        started_at = self._clock()
        log_event(logger, logging.INFO, "scan_started", links_count=len(links))

        links_succeeded = 0
        item_results: list[tuple[PendingItem, str]] = []
        new_items: list[PendingItem] = []
        status = "completed"
        try:
            link_results = await asyncio.gather(*(self._scan_link(link) for link in links))
            links_succeeded = sum(1 for ok in link_results if ok)
            log_event(
                logger,
                logging.INFO,
                "scan_links_finished",
                links_total=len(links),
                links_succeeded=links_succeeded,
            )

            if not self._running.is_running:
                status = "stopped"
            else:
                pending = await asyncio.to_thread(
                    self._repository.list_pending_items,
                    self._settings.pending_item_limit,
                )
                log_event(logger, logging.INFO, "scan_pending_items_found", items_count=len(pending))
                item_results = await self._scan_items_with_outcomes(pending)
                new_items = [
                    item
                    for item, _ in item_results
                    if item.status == PendingItemStatus.NEW and item.id is not None
                ]

                new_item_ids = [item.id for item in new_items] if send_notification else []
                try:
                    await self._post_scan_hook.run(
                        new_item_ids,
                        self.scanner_settings.email_alerts_enabled,
                    )
                except Exception as exc:  # noqa: BLE001
                    log_event(logger, logging.ERROR, "post_scan_hook_failed", error=str(exc))

                if not self._running.is_running:
                    status = "stopped"
                elif send_notification and new_items:
                    self._notifier.notify_new_items(new_items)
        except Exception as exc:  # noqa: BLE001
            status = "failed"
            log_event(logger, logging.ERROR, "scan_failed", stage="cycle", error=str(exc))

        summary = ScanSummary(
            links_total=len(links),
            links_succeeded=links_succeeded,
            links_failed=len(links) - links_succeeded,
            items_total=len(item_results),
            items_scanned=sum(1 for _, outcome in item_results if outcome == OUTCOME_SCANNED),
            items_skipped=sum(1 for _, outcome in item_results if outcome == OUTCOME_SKIPPED),
            items_failed=sum(1 for _, outcome in item_results if outcome == OUTCOME_FAILED),
            new_items=new_items,
            duration_seconds=round(self._clock() - started_at, 3),
            status=status,
        )
        log_event(
            logger,
            logging.INFO,
            "scan_completed",
            status=summary.status,
            links_total=summary.links_total,
            links_failed=summary.links_failed,
            items_total=summary.items_total,
            items_scanned=summary.items_scanned,
            items_skipped=summary.items_skipped,
            items_failed=summary.items_failed,
            new_items_count=len(summary.new_items),
            duration_seconds=summary.duration_seconds,
        )
        return self._finish(summary)

    def _finish(self, summary: ScanSummary) -> ScanSummary:
        self.last_summary = summary
        return summary

    async def _scan_link(self, link: TargetLink) -> bool:
        async def _on_content(snapshot: ContentSnapshot) -> list[PendingItem] | None:
            if not self._running.is_running:
                return None
            outcome = await self._parser.parse(
                snapshot.html,
                ParseContext(
                    kind=ParseKind.LISTING,
                    retry_count=snapshot.retry_count,
                    max_retries=snapshot.max_retries,
                    link=link,
                ),
            )
            if outcome.parse_failed:
                log_event(logger, logging.DEBUG, "link_parse_failed", link_id=link.id, title=link.title)
                raise ParseFailureError(f"failed to parse html for link {link.id}")
            await self._pace(self._settings.link_delay_range)
            return list(outcome.items)

        try:
            discovered = await self._normal_loader.load(
                link.url,
                scroll_passes=self._settings.link_scroll_passes,
                on_content_ready=_on_content,
                empty_result=None,
            )
        except Exception as exc:  # noqa: BLE001
            if self._running.is_running:
                log_event(logger, logging.ERROR, "link_scan_failed", link_id=link.id, error=str(exc))
                await self._bump_link_failures(link)
            return False

        if discovered is None:
            return False

        try:
            stored = await asyncio.to_thread(self._repository.add_discovered_items, link.id, discovered)
            await asyncio.to_thread(self._repository.mark_link_scraped, link.id, self._wall_clock())
        except Exception as exc:  # noqa: BLE001
            log_event(logger, logging.ERROR, "link_store_failed", link_id=link.id, error=str(exc))
            return False

        log_event(
            logger,
            logging.INFO,
            "link_scanned",
            link_id=link.id,
            discovered=len(discovered),
            stored=len(stored),
        )
        return True

    async def _bump_link_failures(self, link: TargetLink) -> None:
        try:
            await asyncio.to_thread(
                self._repository.increase_failure_count,
                link.id,
                link.consecutive_failure_count + 1,
            )
        except Exception as exc:  # noqa: BLE001
            log_event(logger, logging.ERROR, "link_failure_count_failed", link_id=link.id, error=str(exc))

    async def _scan_items_with_outcomes(self, items: list[PendingItem]) -> list[tuple[PendingItem, str]]:
        normal = [(index, item) for index, item in enumerate(items) if not item.needs_incognito_session]
        incognito = [(index, item) for index, item in enumerate(items) if item.needs_incognito_session]
        log_event(
            logger,
            logging.INFO,
            "item_scan_started",
            normal_count=len(normal),
            incognito_count=len(incognito),
        )

        normal_results, incognito_results = await asyncio.gather(
            self._scan_item_batches(normal, self._normal_loader),
            self._scan_item_batches(incognito, self._incognito_loader),
        )

        results: list[tuple[PendingItem, str] | None] = [None] * len(items)
        for index, result in [*normal_results, *incognito_results]:
            results[index] = result
        log_event(logger, logging.INFO, "item_scan_finished", items_count=len(items))
        return [result for result in results if result is not None]

    async def _scan_item_batches(
        self,
        indexed_items: list[tuple[int, PendingItem]],
        loader: RetryingPageLoader,
    ) -> list[tuple[int, tuple[PendingItem, str]]]:
        results: list[tuple[int, tuple[PendingItem, str]]] = []
        for start in range(0, len(indexed_items), ITEM_BATCH_SIZE):
            batch = indexed_items[start : start + ITEM_BATCH_SIZE]
            if not self._running.is_running:
                results.extend((index, (item, OUTCOME_ABORTED)) for index, item in batch)
                continue
            scanned = await asyncio.gather(*(self._scan_item(item, loader) for _, item in batch))
            results.extend(zip((index for index, _ in batch), scanned))
        return results

    async def _scan_item(self, item: PendingItem, loader: RetryingPageLoader) -> tuple[PendingItem, str]:
        url = item.external_url
        if self._failure_tracker.should_skip(url):
            log_event(logger, logging.INFO, "item_skipped", item_id=item.id, url=url)
            return item, OUTCOME_SKIPPED

        async def _on_content(snapshot: ContentSnapshot) -> PendingItem | None:
            log_event(logger, logging.DEBUG, "item_html_downloaded", item_id=item.id, title=item.title)
            if not self._running.is_running:
                return None
            outcome = await self._parser.parse(
                snapshot.html,
                ParseContext(
                    kind=ParseKind.DESCRIPTION,
                    retry_count=snapshot.retry_count,
                    max_retries=snapshot.max_retries,
                    item=item,
                ),
            )
            if outcome.parse_failed or not outcome.items:
                log_event(logger, logging.DEBUG, "item_parse_failed", item_id=item.id, title=item.title)
                raise ParseFailureError(f"failed to parse description for item {item.id}")
            await self._pace(self._settings.item_delay_range)
            return outcome.items[0]

        try:
            parsed = await loader.load(
                url,
                scroll_passes=self._settings.item_scroll_passes,
                on_content_ready=_on_content,
                empty_result=None,
            )
        except Exception as exc:  # noqa: BLE001
            failures = self._failure_tracker.record_failure(url)
            log_event(
                logger,
                logging.ERROR,
                "item_scan_failed",
                item_id=item.id,
                url=url,
                failure_count=failures,
                error=str(exc),
            )
            return item, OUTCOME_FAILED

        if parsed is None:
            return item, OUTCOME_ABORTED

        updated = replace(
            item,
            status=parsed.status,
            description=parsed.description,
            title=parsed.title or item.title,
            company_name=parsed.company_name or item.company_name,
        )
        try:
            stored = await asyncio.to_thread(self._repository.update_item, updated)
        except Exception as exc:  # noqa: BLE001
            log_event(logger, logging.ERROR, "item_store_failed", item_id=item.id, error=str(exc))
            return item, OUTCOME_FAILED

        self._failure_tracker.record_success(url)
        return stored, OUTCOME_SCANNED

    async def _pace(self, delay_range: tuple[float, float]) -> None:
        low, high = delay_range
        await self._running.sleep(self._rng.uniform(low, high), self._sleep)
