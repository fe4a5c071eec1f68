"""
Crawl engine exports.
"""

from jobprobe.crawler.failure_tracker import UrlFailureTracker
from jobprobe.crawler.orchestrator import CrawlOrchestrator
from jobprobe.crawler.page_loader import ContentSnapshot, RetryingPageLoader
from jobprobe.crawler.rate_limiter import DomainRateLimiter
from jobprobe.crawler.runtime import RunningFlag
from jobprobe.crawler.session_pool import BrowserSessionPool

__all__ = [
    "BrowserSessionPool",
    "ContentSnapshot",
    "CrawlOrchestrator",
    "DomainRateLimiter",
    "RetryingPageLoader",
    "RunningFlag",
    "UrlFailureTracker",
]
