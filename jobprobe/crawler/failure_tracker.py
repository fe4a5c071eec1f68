"""
Per-URL consecutive failure tracking with cooldown-based suppression.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from jobprobe.config import FailureTrackerSettings
from jobprobe.crawler.domains import is_sensitive_domain, resolve_domain
from jobprobe.crawler.logging_utils import log_event
from jobprobe.domain.crawl import UrlSkippedAlert

logger = logging.getLogger(__name__)


@dataclass
class UrlFailureRecord:
    url: str
    count: int
    last_failed_at: float
    last_failed_at_wall: datetime


class UrlFailureTracker:
    """
    Suppresses URLs that keep failing until their cooldown window elapses.

    Independent of the loader's navigation retry budget; records live only
    for the lifetime of the process.
    """

    def __init__(
        self,
        *,
        settings: FailureTrackerSettings,
        on_alert: Callable[[UrlSkippedAlert], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._settings = settings
        self._on_alert = on_alert
        self._clock = clock
        self._wall_clock = wall_clock
        self._records: dict[str, UrlFailureRecord] = {}

    def get(self, url: str) -> UrlFailureRecord | None:
        return self._records.get(url)

    def should_skip(self, url: str) -> bool:
        record = self._records.get(url)
        if record is None:
            return False

        sensitive = is_sensitive_domain(resolve_domain(url), self._settings.sensitive_domains)
        window = (
            self._settings.sensitive_cooldown_seconds
            if sensitive
            else self._settings.default_cooldown_seconds
        )
        elapsed = self._clock() - record.last_failed_at
        if elapsed >= window:
            del self._records[url]
            log_event(logger, logging.DEBUG, "url_failure_cooldown_elapsed", url=url)
            return False

        if sensitive and record.count >= self._settings.sensitive_failure_threshold:
            return True
        return record.count >= self._settings.max_retries_per_url

    def record_failure(self, url: str) -> int:
        """
        Count one more failure for `url` and return the new count.
        """

        record = self._records.get(url)
        now = self._clock()
        now_wall = self._wall_clock()
        if record is None:
            record = UrlFailureRecord(url=url, count=0, last_failed_at=now, last_failed_at_wall=now_wall)
            self._records[url] = record
        record.count += 1
        record.last_failed_at = now
        record.last_failed_at_wall = now_wall

        if record.count == self._settings.max_retries_per_url:
            log_event(
                logger,
                logging.WARNING,
                "url_failure_threshold_reached",
                url=url,
                failure_count=record.count,
            )
            if self._on_alert is not None:
                self._on_alert(
                    UrlSkippedAlert(
                        url=url,
                        failure_count=record.count,
                        last_failed_at=now_wall,
                    )
                )
        return record.count

    def record_success(self, url: str) -> None:
        self._records.pop(url, None)
