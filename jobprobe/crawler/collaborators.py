"""
Interfaces the crawl engine depends on but does not implement.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from jobprobe.domain.crawl import (
    ParseContext,
    ParseOutcome,
    PendingItem,
    ScannerSettings,
    UrlSkippedAlert,
)


class HtmlParser(ABC):
    """
    Turns rendered HTML into items.

    For listings the outcome carries newly discovered items; for descriptions
    it carries the single updated item.
    """

    @abstractmethod
    async def parse(self, html: str, context: ParseContext) -> ParseOutcome:
        raise NotImplementedError


class NotificationSink(ABC):
    @abstractmethod
    def notify_new_items(self, items: list[PendingItem]) -> None:
        raise NotImplementedError

    @abstractmethod
    def notify_url_skipped(self, alert: UrlSkippedAlert) -> None:
        raise NotImplementedError


class PostScanHook(ABC):
    """
    Runs once at the end of every scan cycle (for example, email alerts).
    """

    @abstractmethod
    async def run(self, new_item_ids: list[int], email_alerts_enabled: bool) -> None:
        raise NotImplementedError


class PowerManagementHook(ABC):
    """
    Keeps the host awake between `acquire()` and `release()`.
    """

    @abstractmethod
    def acquire(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def release(self) -> None:
        raise NotImplementedError

    @property
    @abstractmethod
    def is_active(self) -> bool:
        raise NotImplementedError


class SettingsStore(ABC):
    @abstractmethod
    def load(self) -> ScannerSettings:
        raise NotImplementedError

    @abstractmethod
    def save(self, settings: ScannerSettings) -> None:
        raise NotImplementedError
