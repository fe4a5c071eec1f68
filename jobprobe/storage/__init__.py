"""
Storage layer exports.
"""

from jobprobe.storage.base import CrawlRepository
from jobprobe.storage.settings_store import JsonSettingsStore
from jobprobe.storage.sqlalchemy_storage import SQLAlchemyCrawlRepository

__all__ = ["CrawlRepository", "JsonSettingsStore", "SQLAlchemyCrawlRepository"]
