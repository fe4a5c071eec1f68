"""
jobprobe/api/routers/scans.py

Scan trigger, status and scanner settings endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status

from jobprobe.api.dependencies import get_crawl_service
from jobprobe.domain.crawl import ScannerSettings, ScanSummary
from jobprobe.scheduler.jobs import AVAILABLE_CRON_RULES
from jobprobe.schemas.scans import (
    CronRuleResponse,
    ScanAcceptedResponse,
    ScannerSettingsPayload,
    ScannerSettingsResponse,
    ScanStatusResponse,
    ScanSummaryResponse,
)
from jobprobe.services.crawl_service import CrawlService

router = APIRouter(tags=["scans"])


def _summary_response(summary: ScanSummary) -> ScanSummaryResponse:
    return ScanSummaryResponse(
        status=summary.status,
        links_total=summary.links_total,
        links_succeeded=summary.links_succeeded,
        links_failed=summary.links_failed,
        items_total=summary.items_total,
        items_scanned=summary.items_scanned,
        items_skipped=summary.items_skipped,
        items_failed=summary.items_failed,
        new_item_ids=[item.id for item in summary.new_items if item.id is not None],
        duration_seconds=summary.duration_seconds,
    )


def _settings_response(settings: ScannerSettings) -> ScannerSettingsResponse:
    return ScannerSettingsResponse(
        cron_rule=settings.cron_rule,
        prevent_sleep=settings.prevent_sleep,
        use_sound=settings.use_sound,
        email_alerts_enabled=settings.email_alerts_enabled,
        available_cron_rules=[
            CronRuleResponse(name=rule.name, value=rule.value) for rule in AVAILABLE_CRON_RULES
        ],
    )


@router.post("/scans", status_code=status.HTTP_202_ACCEPTED, response_model=ScanAcceptedResponse)
def trigger_scan(
    background_tasks: BackgroundTasks,
    service: CrawlService = Depends(get_crawl_service),
) -> ScanAcceptedResponse:
    """
    Start a full scan cycle in the background.
    """

    if service.orchestrator.is_scanning():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A scan is already in progress.",
        )
    background_tasks.add_task(service.orchestrator.scan_all)
    return ScanAcceptedResponse(status="accepted")


@router.get("/scans/status", response_model=ScanStatusResponse)
def scan_status(service: CrawlService = Depends(get_crawl_service)) -> ScanStatusResponse:
    orchestrator = service.orchestrator
    last_summary = orchestrator.last_summary
    return ScanStatusResponse(
        is_scanning=orchestrator.is_scanning(),
        active_scans=orchestrator.active_scans,
        last_summary=_summary_response(last_summary) if last_summary is not None else None,
    )


@router.post(
    "/links/{link_id}/scan",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ScanAcceptedResponse,
)
async def trigger_link_scan(
    link_id: int,
    background_tasks: BackgroundTasks,
    service: CrawlService = Depends(get_crawl_service),
) -> ScanAcceptedResponse:
    """
    Re-scan one link in the background.
    """

    try:
        link = await service.get_link(link_id)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    background_tasks.add_task(service.orchestrator.scan_links, [link])
    return ScanAcceptedResponse(status="accepted", link_id=link.id)


@router.get("/settings", response_model=ScannerSettingsResponse)
def get_settings(service: CrawlService = Depends(get_crawl_service)) -> ScannerSettingsResponse:
    return _settings_response(service.scheduler.get_settings())


@router.put("/settings", response_model=ScannerSettingsResponse)
def update_settings(
    payload: ScannerSettingsPayload,
    service: CrawlService = Depends(get_crawl_service),
) -> ScannerSettingsResponse:
    """
    Apply and persist scanner settings.
    """

    settings = ScannerSettings(
        cron_rule=payload.cron_rule or None,
        prevent_sleep=payload.prevent_sleep,
        use_sound=payload.use_sound,
        email_alerts_enabled=payload.email_alerts_enabled,
    )
    try:
        applied = service.scheduler.update_settings(settings)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return _settings_response(applied)
