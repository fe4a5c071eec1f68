"""
Domain model exports.
"""

from jobprobe.domain.crawl import (
    ParseContext,
    ParseKind,
    ParseOutcome,
    PendingItem,
    PendingItemStatus,
    ScannerSettings,
    ScanSummary,
    TargetLink,
    UrlSkippedAlert,
)

__all__ = [
    "ParseContext",
    "ParseKind",
    "ParseOutcome",
    "PendingItem",
    "PendingItemStatus",
    "ScanSummary",
    "ScannerSettings",
    "TargetLink",
    "UrlSkippedAlert",
]
