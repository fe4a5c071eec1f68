"""
db/models/crawl_item.py

Postings discovered on target links, pending or completed description scans.
"""

from __future__ import annotations

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, IntegerIdMixin, TimestampMixin


class CrawlItemStatus:
    PROCESSING = "processing"
    NEW = "new"
    EXCLUDED = "excluded"


class CrawlItemRecord(Base, IntegerIdMixin, TimestampMixin):
    __tablename__ = "crawl_items"

    link_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("target_links.id", ondelete="SET NULL"),
        nullable=True,
    )
    site_id: Mapped[int] = mapped_column(Integer, nullable=False)
    external_url: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    company_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=CrawlItemStatus.PROCESSING,
        comment="processing, new, excluded",
    )
    needs_incognito_session: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("external_url", name="uq_crawl_items_external_url"),
        Index("ix_crawl_items_status", "status"),
        Index("ix_crawl_items_link_id", "link_id"),
    )
