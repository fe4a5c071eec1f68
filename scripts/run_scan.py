"""
Run one scan cycle from the CLI.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os

from jobprobe.domain.crawl import ScanSummary
from jobprobe.services.crawl_service import build_crawl_service


def _summary_payload(summary: ScanSummary | None) -> dict[str, object]:
    if summary is None:
        return {"status": "skipped"}
    return {
        "status": summary.status,
        "links_total": summary.links_total,
        "links_failed": summary.links_failed,
        "items_total": summary.items_total,
        "items_scanned": summary.items_scanned,
        "items_skipped": summary.items_skipped,
        "items_failed": summary.items_failed,
        "new_item_ids": [item.id for item in summary.new_items],
        "duration_seconds": summary.duration_seconds,
    }


async def _run(link_id: int | None, notify: bool) -> ScanSummary | None:
    service = build_crawl_service()
    await service.start(schedule=False)
    try:
        if link_id is not None:
            link = await service.get_link(link_id)
            return await service.orchestrator.scan_links([link], send_notification=notify)
        if not notify:
            links = await asyncio.to_thread(service.repository.list_links)
            return await service.orchestrator.scan_links(links, send_notification=False)
        return await service.orchestrator.scan_all()
    finally:
        await service.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Run one scan cycle.")
    parser.add_argument(
        "--link-id",
        dest="link_id",
        type=int,
        default=None,
        help="Scan only this target link.",
    )
    parser.add_argument(
        "--no-notify",
        dest="notify",
        action="store_false",
        help="Suppress notifications and email alerts for this run.",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").strip().upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    try:
        summary = asyncio.run(_run(args.link_id, args.notify))
    except LookupError as exc:
        print(json.dumps({"status": "failed", "error": str(exc)}, indent=2))
        return 1

    print(json.dumps(_summary_payload(summary), indent=2))
    return 0 if summary is None or summary.status != "failed" else 1


if __name__ == "__main__":
    raise SystemExit(main())
