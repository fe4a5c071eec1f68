"""
Crawl failure taxonomy.

Failures are contained per link, per item or per pool acquisition; none of
these abort a scan cycle.
"""

from __future__ import annotations


class CrawlError(RuntimeError):
    """Base class for crawl engine failures."""


class NavigationError(CrawlError):
    """Transient navigation failure (timeout, network error)."""


class RateLimitedError(CrawlError):
    """The site answered 429 or served a challenge page."""


class AuthWallError(CrawlError):
    """
    Navigation ended on a login or verification page.

    Never retried: repeating the navigation cannot resolve an auth redirect.
    """

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"authwall detected: {url}")


class ParseFailureError(CrawlError):
    """The parser could not extract anything from the rendered HTML."""


class PoolInvariantViolation(CrawlError):
    """Admission succeeded but no session slot was free. Indicates a bug."""


class PoolClosedError(CrawlError):
    """The session pool is not accepting work."""


class CrawlStoppedError(CrawlError):
    """
    Shutdown began mid-load. Never retried; `load()` turns it into the
    neutral result.
    """
