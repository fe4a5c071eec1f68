"""
SQLAlchemy-backed crawl repository.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.models.crawl_item import CrawlItemRecord
from db.models.target_link import TargetLinkRecord
from db.repositories.crawl_repository import CrawlRecordRepository
from jobprobe.domain.crawl import PendingItem, TargetLink
from jobprobe.storage.base import CrawlRepository


def _to_link(record: TargetLinkRecord) -> TargetLink:
    return TargetLink(
        id=record.id,
        url=record.url,
        title=record.title,
        site_id=record.site_id,
        consecutive_failure_count=record.scrape_failure_count,
        last_scraped_at=record.last_scraped_at,
    )


def _to_item(record: CrawlItemRecord) -> PendingItem:
    return PendingItem(
        id=record.id,
        external_url=record.external_url,
        site_id=record.site_id,
        link_id=record.link_id,
        needs_incognito_session=record.needs_incognito_session,
        title=record.title,
        company_name=record.company_name,
        description=record.description,
        status=record.status,
    )


class SQLAlchemyCrawlRepository(CrawlRepository):
    """
    Opens one session per call so it can be used from worker threads.
    """

    def __init__(self, *, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def list_links(self) -> list[TargetLink]:
        with self._session_factory() as session:
            return [_to_link(record) for record in CrawlRecordRepository(session).list_links()]

    def get_link(self, link_id: int) -> TargetLink | None:
        with self._session_factory() as session:
            record = CrawlRecordRepository(session).get_link(link_id)
            return _to_link(record) if record is not None else None

    def create_link(self, *, url: str, title: str, site_id: int) -> TargetLink:
        with self._session_factory() as session:
            try:
                record = CrawlRecordRepository(session).create_link(url=url, title=title, site_id=site_id)
                session.commit()
                return _to_link(record)
            except SQLAlchemyError:
                session.rollback()
                raise

    def increase_failure_count(self, link_id: int, failures: int) -> None:
        with self._session_factory() as session:
            try:
                CrawlRecordRepository(session).set_failure_count(link_id=link_id, failures=failures)
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise

    def mark_link_scraped(self, link_id: int, scraped_at: datetime) -> None:
        with self._session_factory() as session:
            try:
                CrawlRecordRepository(session).mark_scraped(link_id=link_id, scraped_at=scraped_at)
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise

    def add_discovered_items(self, link_id: int, items: Sequence[PendingItem]) -> list[PendingItem]:
        if not items:
            return []
        rows = [
            {
                "link_id": link_id,
                "site_id": item.site_id,
                "external_url": item.external_url,
                "title": item.title,
                "company_name": item.company_name,
                "description": item.description,
                "status": item.status,
                "needs_incognito_session": item.needs_incognito_session,
            }
            for item in items
        ]
        with self._session_factory() as session:
            try:
                inserted = CrawlRecordRepository(session).insert_items(rows)
                session.commit()
                return [_to_item(record) for record in inserted]
            except SQLAlchemyError:
                session.rollback()
                raise

    def list_pending_items(self, limit: int) -> list[PendingItem]:
        with self._session_factory() as session:
            records = CrawlRecordRepository(session).list_pending_items(limit=limit)
            return [_to_item(record) for record in records]

    def update_item(self, item: PendingItem) -> PendingItem:
        if item.id is None:
            raise ValueError("Cannot update an item that has not been stored.")
        with self._session_factory() as session:
            try:
                record = CrawlRecordRepository(session).update_item(
                    item_id=item.id,
                    values={
                        "status": item.status,
                        "description": item.description,
                        "title": item.title,
                        "company_name": item.company_name,
                    },
                )
                if record is None:
                    raise LookupError(f"item not found: {item.id}")
                session.commit()
                return _to_item(record)
            except SQLAlchemyError:
                session.rollback()
                raise
