"""
Repository for target links and crawl items.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from db.models.crawl_item import CrawlItemRecord, CrawlItemStatus
from db.models.target_link import TargetLinkRecord


class CrawlRecordRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_link(self, *, url: str, title: str, site_id: int) -> TargetLinkRecord:
        link = TargetLinkRecord(url=url, title=title, site_id=site_id, scrape_failure_count=0)
        self._session.add(link)
        self._session.flush()
        self._session.refresh(link)
        return link

    def get_link(self, link_id: int) -> TargetLinkRecord | None:
        return self._session.get(TargetLinkRecord, link_id)

    def list_links(self) -> list[TargetLinkRecord]:
        stmt: Select[tuple[TargetLinkRecord]] = select(TargetLinkRecord).order_by(TargetLinkRecord.id)
        return list(self._session.scalars(stmt).all())

    def set_failure_count(self, *, link_id: int, failures: int) -> TargetLinkRecord | None:
        link = self.get_link(link_id)
        if link is None:
            return None
        link.scrape_failure_count = failures
        return link

    def mark_scraped(self, *, link_id: int, scraped_at: datetime) -> TargetLinkRecord | None:
        link = self.get_link(link_id)
        if link is None:
            return None
        link.last_scraped_at = scraped_at
        link.scrape_failure_count = 0
        return link

    def insert_items(self, rows: Sequence[dict[str, Any]]) -> list[CrawlItemRecord]:
        """
        Insert items whose external URL is not stored yet. Returns inserted rows.
        """

        if not rows:
            return []
        urls = {row["external_url"] for row in rows}
        existing = set(
            self._session.scalars(
                select(CrawlItemRecord.external_url).where(CrawlItemRecord.external_url.in_(urls))
            ).all()
        )

        inserted: list[CrawlItemRecord] = []
        for row in rows:
            if row["external_url"] in existing:
                continue
            existing.add(row["external_url"])
            record = CrawlItemRecord(**row)
            self._session.add(record)
            inserted.append(record)
        self._session.flush()
        return inserted

    def list_items(self, *, status: str | None = None, limit: int = 100) -> list[CrawlItemRecord]:
        stmt: Select[tuple[CrawlItemRecord]] = select(CrawlItemRecord)
        if status:
            stmt = stmt.where(CrawlItemRecord.status == status)
        stmt = stmt.order_by(CrawlItemRecord.id).limit(max(1, limit))
        return list(self._session.scalars(stmt).all())

    def list_pending_items(self, *, limit: int) -> list[CrawlItemRecord]:
        return self.list_items(status=CrawlItemStatus.PROCESSING, limit=limit)

    def get_item(self, item_id: int) -> CrawlItemRecord | None:
        return self._session.get(CrawlItemRecord, item_id)

    def update_item(self, *, item_id: int, values: dict[str, Any]) -> CrawlItemRecord | None:
        item = self.get_item(item_id)
        if item is None:
            return None
        for key, value in values.items():
            setattr(item, key, value)
        return item
