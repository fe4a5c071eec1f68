"""
jobprobe/connectors/parser_api.py

HTTP client for the remote HTML parser and post-scan hook.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

import requests

from jobprobe.config import ParserAPISettings
from jobprobe.crawler.collaborators import HtmlParser, PostScanHook
from jobprobe.domain.crawl import ParseContext, ParseKind, ParseOutcome, PendingItem, PendingItemStatus

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

SCAN_LISTING_PATH = "/scan-urls"
SCAN_DESCRIPTION_PATH = "/scan-job-description"
POST_SCAN_HOOK_PATH = "/post-scan-hook"


class ParserApiError(RuntimeError):
    """
    Raised when the parser API cannot be reached or answers with an error.
    """


def item_from_payload(payload: dict[str, Any], *, fallback: PendingItem | None = None) -> PendingItem:
    """
    Build a PendingItem from an API payload, filling gaps from `fallback`.
    """

    def _pick(key: str, default: Any) -> Any:
        value = payload.get(key)
        if value is not None:
            return value
        if fallback is not None:
            return getattr(fallback, key)
        return default

    external_url = _pick("external_url", "")
    if not external_url:
        raise ParserApiError("parser response item is missing external_url")

    return PendingItem(
        id=_pick("id", None),
        external_url=str(external_url),
        site_id=int(_pick("site_id", 0)),
        link_id=_pick("link_id", None),
        needs_incognito_session=bool(_pick("needs_incognito_session", False)),
        title=str(_pick("title", "")),
        company_name=str(_pick("company_name", "")),
        description=_pick("description", None),
        status=str(_pick("status", PendingItemStatus.PROCESSING)),
    )


class ParserApiClient(HtmlParser, PostScanHook):
    """
    Sends rendered HTML to the parser service.

    Requests are blocking and retried with exponential backoff; the async
    entry points run them in a worker thread.
    """

    def __init__(
        self,
        *,
        settings: ParserAPISettings,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._base_url = settings.base_url.rstrip("/")
        self._api_key = settings.api_key
        self._session = session or requests.Session()
        self._timeout_seconds = settings.timeout_seconds
        self._max_retries = settings.max_retries
        self._backoff_initial_seconds = settings.backoff_initial_seconds
        self._backoff_multiplier = settings.backoff_multiplier
        self._sleep = sleep

    async def parse(self, html: str, context: ParseContext) -> ParseOutcome:
        return await asyncio.to_thread(self.parse_sync, html, context)

    async def run(self, new_item_ids: list[int], email_alerts_enabled: bool) -> None:
        await asyncio.to_thread(self.run_post_scan_hook, new_item_ids, email_alerts_enabled)

    def parse_sync(self, html: str, context: ParseContext) -> ParseOutcome:
        if context.kind == ParseKind.LISTING:
            return self._parse_listing(html, context)
        if context.kind == ParseKind.DESCRIPTION:
            return self._parse_description(html, context)
        raise ValueError(f"Unsupported parse kind: {context.kind}")

    def run_post_scan_hook(self, new_item_ids: list[int], email_alerts_enabled: bool) -> None:
        self._post_json(
            POST_SCAN_HOOK_PATH,
            {"new_item_ids": list(new_item_ids), "email_alerts_enabled": email_alerts_enabled},
        )

    def close(self) -> None:
        self._session.close()

    def _parse_listing(self, html: str, context: ParseContext) -> ParseOutcome:
        if context.link is None:
            raise ValueError("Listing parse requires a link.")
        body = self._post_json(
            SCAN_LISTING_PATH,
            {
                "link_id": context.link.id,
                "content": html,
                "max_retries": context.max_retries,
                "retry_count": context.retry_count,
            },
        )
        if body.get("parse_failed"):
            return ParseOutcome(parse_failed=True)

        items = [
            item_from_payload(
                {"link_id": context.link.id, "site_id": context.link.site_id, **raw},
            )
            for raw in body.get("new_items") or []
        ]
        return ParseOutcome(items=items)

    def _parse_description(self, html: str, context: ParseContext) -> ParseOutcome:
        if context.item is None:
            raise ValueError("Description parse requires an item.")
        body = self._post_json(
            SCAN_DESCRIPTION_PATH,
            {
                "item_id": context.item.id,
                "html": html,
                "max_retries": context.max_retries,
                "retry_count": context.retry_count,
            },
        )
        if body.get("parse_failed"):
            return ParseOutcome(parse_failed=True)

        raw_item = body.get("item")
        if not isinstance(raw_item, dict):
            return ParseOutcome(parse_failed=True)
        return ParseOutcome(items=[item_from_payload(raw_item, fallback=context.item)])

    def _post_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        response = self._request(method="POST", url=f"{self._base_url}{path}", json=payload)
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise ParserApiError(f"parser api: response from {path} was not valid JSON.") from exc
        if not isinstance(body, dict):
            raise ParserApiError(f"parser api: response from {path} was not an object.")
        return body

    def _request(self, *, method: str, url: str, json: dict[str, Any]) -> requests.Response:
        """
        Execute an HTTP request with exponential backoff on transient failures.
        """

        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else None
        last_error: Exception | None = None
        for attempt in range(self._max_retries + 1):
            try:
                response = self._session.request(
                    method=method,
                    url=url,
                    json=json,
                    headers=headers,
                    timeout=self._timeout_seconds,
                )
                if response.status_code in RETRYABLE_STATUS_CODES:
                    raise requests.HTTPError(
                        f"Retryable HTTP status code: {response.status_code}",
                        response=response,
                    )
                response.raise_for_status()
                return response
            except requests.HTTPError as exc:
                last_error = exc
                status_code = exc.response.status_code if exc.response is not None else None
                if status_code not in RETRYABLE_STATUS_CODES:
                    logger.error(
                        "Parser API request failed status=%s url=%s error=%s",
                        status_code,
                        url,
                        exc,
                    )
                    raise ParserApiError("parser api: non-retryable request failure.") from exc
            except (requests.Timeout, requests.ConnectionError) as exc:
                last_error = exc

            if attempt >= self._max_retries:
                break

            backoff_seconds = self._backoff_initial_seconds * (self._backoff_multiplier**attempt)
            logger.warning(
                "Parser API request retry attempt=%s/%s wait_seconds=%.2f url=%s",
                attempt + 1,
                self._max_retries,
                backoff_seconds,
                url,
            )
            self._sleep(backoff_seconds)

        logger.error("Parser API request exhausted retries url=%s error=%s", url, last_error)
        raise ParserApiError("parser api: request failed after retries.") from last_error
