"""
db/models/target_link.py

User-configured search URLs scanned on every cycle.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, IntegerIdMixin, TimestampMixin


class TargetLinkRecord(Base, IntegerIdMixin, TimestampMixin):
    __tablename__ = "target_links"

    url: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    site_id: Mapped[int] = mapped_column(Integer, nullable=False)
    scrape_failure_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Consecutive failed scans; reset on a successful scan",
    )
    last_scraped_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (Index("ix_target_links_site_id", "site_id"),)
