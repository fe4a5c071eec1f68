"""
jobprobe/api/dependencies.py

Shared FastAPI dependencies.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from jobprobe.services.crawl_service import CrawlService


def get_crawl_service(request: Request) -> CrawlService:
    """
    Return the crawl service created by the application lifespan.
    """

    service = getattr(request.app.state, "crawl_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Crawl service is not running.",
        )
    return service
