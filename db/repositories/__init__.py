"""
Repository layer exports.
"""

from db.repositories.crawl_repository import CrawlRecordRepository

__all__ = ["CrawlRecordRepository"]
