"""
jobprobe/services package marker.
"""

from jobprobe.services.crawl_service import CrawlService, build_crawl_service

__all__ = ["CrawlService", "build_crawl_service"]
