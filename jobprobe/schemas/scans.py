"""
jobprobe/schemas/scans.py

Request and response schemas for scan and settings endpoints.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ScanSummaryResponse(BaseModel):
    """
    API response model for one finished scan cycle.
    """

    status: str
    links_total: int = Field(..., ge=0)
    links_succeeded: int = Field(..., ge=0)
    links_failed: int = Field(..., ge=0)
    items_total: int = Field(..., ge=0)
    items_scanned: int = Field(..., ge=0)
    items_skipped: int = Field(..., ge=0)
    items_failed: int = Field(..., ge=0)
    new_item_ids: list[int] = Field(default_factory=list)
    duration_seconds: float = Field(..., ge=0)


class ScanAcceptedResponse(BaseModel):
    status: str
    link_id: int | None = None


class ScanStatusResponse(BaseModel):
    is_scanning: bool
    active_scans: int = Field(..., ge=0)
    last_summary: ScanSummaryResponse | None = None


class CronRuleResponse(BaseModel):
    name: str
    value: str


class ScannerSettingsPayload(BaseModel):
    cron_rule: str | None = None
    prevent_sleep: bool = False
    use_sound: bool = False
    email_alerts_enabled: bool = True


class ScannerSettingsResponse(ScannerSettingsPayload):
    available_cron_rules: list[CronRuleResponse] = Field(default_factory=list)
