"""
Log-based desktop notification sink.
"""

from __future__ import annotations

import logging

from jobprobe.crawler.collaborators import NotificationSink
from jobprobe.crawler.logging_utils import log_event
from jobprobe.domain.crawl import PendingItem, UrlSkippedAlert

logger = logging.getLogger(__name__)

MAX_DISPLAYED_ITEMS = 3
NEW_ITEMS_TITLE = "Job Search Update"


def build_new_items_message(items: list[PendingItem]) -> str:
    """
    Summarize new items as "A at B, C at D and N others are now available!".
    """

    displayed = items[:MAX_DISPLAYED_ITEMS]
    others = len(items) - MAX_DISPLAYED_ITEMS
    first_label = ", ".join(f"{item.title} at {item.company_name}" for item in displayed)
    other_label = ""
    if others > 0:
        other_label = f" and {others} other{'s' if others > 1 else ''}"
    verb = "are" if len(displayed) > 1 else "is"
    return f"{first_label}{other_label} {verb} now available!"


class LoggingNotificationSink(NotificationSink):
    """
    Writes notifications to the log. `silent` mirrors the sound toggle.
    """

    def __init__(self, *, silent: bool = True) -> None:
        self.silent = silent

    def notify_new_items(self, items: list[PendingItem]) -> None:
        if not items:
            return
        log_event(
            logger,
            logging.INFO,
            "notification_new_items",
            title=NEW_ITEMS_TITLE,
            body=build_new_items_message(items),
            items_count=len(items),
            silent=self.silent,
        )

    def notify_url_skipped(self, alert: UrlSkippedAlert) -> None:
        log_event(
            logger,
            logging.WARNING,
            "notification_url_skipped",
            url=alert.url,
            failure_count=alert.failure_count,
            last_failed_at=alert.last_failed_at.isoformat(),
        )
