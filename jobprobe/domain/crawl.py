"""
jobprobe/domain/crawl.py

Domain models shared by the crawl engine and its collaborators.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


class PendingItemStatus:
    PROCESSING = "processing"
    NEW = "new"
    EXCLUDED = "excluded"


class ParseKind:
    LISTING = "listing"
    DESCRIPTION = "description"


@dataclass(frozen=True)
class TargetLink:
    """
    A user-configured search URL that is scanned every cycle.
    """

    id: int
    url: str
    title: str
    site_id: int
    consecutive_failure_count: int = 0
    last_scraped_at: datetime | None = None


@dataclass(frozen=True)
class PendingItem:
    """
    A posting discovered on a target link.

    `id` is None until the item has been stored by the repository.
    """

    id: int | None
    external_url: str
    site_id: int
    link_id: int | None
    needs_incognito_session: bool = False
    title: str = ""
    company_name: str = ""
    description: str | None = None
    status: str = PendingItemStatus.PROCESSING


@dataclass(frozen=True)
class ParseContext:
    """
    What the parser is looking at and how many content retries remain.
    """

    kind: str
    retry_count: int
    max_retries: int
    link: TargetLink | None = None
    item: PendingItem | None = None


@dataclass(frozen=True)
class ParseOutcome:
    """
    Parser result for one HTML document.
    """

    items: list[PendingItem] = field(default_factory=list)
    parse_failed: bool = False


@dataclass(frozen=True)
class UrlSkippedAlert:
    """
    Raised once when a URL keeps failing and needs manual review.
    """

    url: str
    failure_count: int
    last_failed_at: datetime


@dataclass(frozen=True)
class ScannerSettings:
    """
    User-facing scanner toggles persisted between runs.
    """

    cron_rule: str | None = None
    prevent_sleep: bool = False
    use_sound: bool = False
    email_alerts_enabled: bool = True


@dataclass(frozen=True)
class ScanSummary:
    """
    Aggregate counts for one scan cycle.
    """

    links_total: int
    links_succeeded: int
    links_failed: int
    items_total: int
    items_scanned: int
    items_skipped: int
    items_failed: int
    new_items: list[PendingItem] = field(default_factory=list)
    duration_seconds: float = 0.0
    status: str = "completed"
