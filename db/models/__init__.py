"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.crawl_item import CrawlItemRecord, CrawlItemStatus
from db.models.target_link import TargetLinkRecord

__all__ = [
    "CrawlItemRecord",
    "CrawlItemStatus",
    "TargetLinkRecord",
]
