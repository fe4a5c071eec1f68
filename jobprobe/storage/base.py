"""
Storage interfaces for target links and pending items.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime

from jobprobe.domain.crawl import PendingItem, TargetLink


class CrawlRepository(ABC):
    """
    Blocking storage abstraction; the crawl engine calls it off the event loop.
    """

    @abstractmethod
    def list_links(self) -> list[TargetLink]:
        """
        Return every target link.
        """

    @abstractmethod
    def get_link(self, link_id: int) -> TargetLink | None:
        """
        Return one link or None when it does not exist.
        """

    @abstractmethod
    def create_link(self, *, url: str, title: str, site_id: int) -> TargetLink:
        """
        Store a new target link.
        """

    @abstractmethod
    def increase_failure_count(self, link_id: int, failures: int) -> None:
        """
        Set the link's consecutive failure count to `failures`.
        """

    @abstractmethod
    def mark_link_scraped(self, link_id: int, scraped_at: datetime) -> None:
        """
        Record a successful scan and reset the consecutive failure count.
        """

    @abstractmethod
    def add_discovered_items(self, link_id: int, items: Sequence[PendingItem]) -> list[PendingItem]:
        """
        Persist newly discovered items and return the ones actually inserted.
        """

    @abstractmethod
    def list_pending_items(self, limit: int) -> list[PendingItem]:
        """
        Return up to `limit` items still awaiting a description scan.
        """

    @abstractmethod
    def update_item(self, item: PendingItem) -> PendingItem:
        """
        Persist status and description changes of a stored item.
        """
