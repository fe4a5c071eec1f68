"""
jobprobe/schemas package marker.
"""

from jobprobe.schemas.scans import (
    CronRuleResponse,
    ScanAcceptedResponse,
    ScannerSettingsPayload,
    ScannerSettingsResponse,
    ScanStatusResponse,
    ScanSummaryResponse,
)

__all__ = [
    "CronRuleResponse",
    "ScanAcceptedResponse",
    "ScanStatusResponse",
    "ScanSummaryResponse",
    "ScannerSettingsPayload",
    "ScannerSettingsResponse",
]
