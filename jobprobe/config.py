"""
jobprobe/config.py

Environment-driven settings for the crawl engine.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from db.config import load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _get_list_env(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    """
    Read a comma-separated list, dropping blank entries.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    items = tuple(item.strip().lower() for item in value.split(",") if item.strip())
    return items or default


@dataclass(frozen=True)
class RateLimitSettings:
    """
    Per-domain request pacing.
    """

    default_min_delay_seconds: float = 2.0
    sensitive_min_delay_seconds: float = 8.0
    jitter_max_seconds: float = 3.0
    sensitive_domains: tuple[str, ...] = ("linkedin.com",)
    sensitive_request_threshold: int = 10
    sensitive_cooldown_seconds: float = 300.0
    window_reset_seconds: float = 3600.0
    stale_after_seconds: float = 7200.0
    sweep_interval_seconds: float = 3600.0


@dataclass(frozen=True)
class FailureTrackerSettings:
    """
    Per-URL failure suppression thresholds.
    """

    max_retries_per_url: int = 5
    default_cooldown_seconds: float = 300.0
    sensitive_failure_threshold: int = 3
    sensitive_cooldown_seconds: float = 600.0
    sensitive_domains: tuple[str, ...] = ("linkedin.com",)


@dataclass(frozen=True)
class LoaderSettings:
    """
    Navigation and content retry behaviour.
    """

    navigation_max_attempts: int = 20
    navigation_start_delay_seconds: float = 0.1
    navigation_max_delay_seconds: float = 5.0
    navigation_timeout_seconds: float = 30.0
    content_max_retries: int = 1
    content_start_delay_seconds: float = 1.0
    content_max_delay_seconds: float = 5.0
    rate_limited_wait_min_seconds: float = 20.0
    rate_limited_wait_max_seconds: float = 40.0
    first_scroll_delay_range: tuple[float, float] = (3.0, 7.0)
    scroll_delay_range: tuple[float, float] = (2.0, 6.0)
    partial_scroll_probability: float = 0.7
    partial_scroll_fraction: float = 0.9
    auth_wall_patterns: tuple[str, ...] = ("authwall", "login")
    challenge_title_prefixes: tuple[str, ...] = ("just a moment",)
    renavigate_on_parse_failure: bool = True


@dataclass(frozen=True)
class BrowserSettings:
    """
    Headless browser pool configuration.
    """

    normal_pool_size: int = 2
    incognito_pool_size: int = 2
    headless: bool = True
    user_data_dir: str = ".browser-profile"
    viewport_width: int = 1600
    viewport_height: int = 1200
    blocked_url_patterns: tuple[str, ...] = ("checkpoint/pk/initiatelogin",)
    close_grace_seconds: float = 0.5


@dataclass(frozen=True)
class OrchestratorSettings:
    """
    Scan cycle pacing and limits.
    """

    link_scroll_passes: int = 5
    item_scroll_passes: int = 1
    pending_item_limit: int = 300
    link_delay_range: tuple[float, float] = (1.0, 4.0)
    item_delay_range: tuple[float, float] = (0.3, 1.0)


@dataclass(frozen=True)
class ParserAPISettings:
    """
    HTTP parser service settings.
    """

    base_url: str = "http://127.0.0.1:8080"
    api_key: str | None = None
    timeout_seconds: float = 30.0
    max_retries: int = 3
    backoff_initial_seconds: float = 0.5
    backoff_multiplier: float = 2.0


@dataclass(frozen=True)
class ScannerDefaults:
    """
    Where scanner settings live and which timezone cron rules use.
    """

    settings_path: str = "scanner_settings.json"
    timezone: str = "UTC"


@lru_cache(maxsize=1)
def get_rate_limit_settings() -> RateLimitSettings:
    """
    Return cached rate limiter settings from environment variables.
    """

    return RateLimitSettings(
        default_min_delay_seconds=max(0.0, _get_float_env("RATE_LIMIT_DEFAULT_MIN_DELAY_SECONDS", 2.0)),
        sensitive_min_delay_seconds=max(0.0, _get_float_env("RATE_LIMIT_SENSITIVE_MIN_DELAY_SECONDS", 8.0)),
        jitter_max_seconds=max(0.0, _get_float_env("RATE_LIMIT_JITTER_MAX_SECONDS", 3.0)),
        sensitive_domains=_get_list_env("RATE_LIMIT_SENSITIVE_DOMAINS", ("linkedin.com",)),
        sensitive_request_threshold=max(1, _get_int_env("RATE_LIMIT_SENSITIVE_REQUEST_THRESHOLD", 10)),
        sensitive_cooldown_seconds=max(0.0, _get_float_env("RATE_LIMIT_SENSITIVE_COOLDOWN_SECONDS", 300.0)),
        window_reset_seconds=max(1.0, _get_float_env("RATE_LIMIT_WINDOW_RESET_SECONDS", 3600.0)),
        stale_after_seconds=max(1.0, _get_float_env("RATE_LIMIT_STALE_AFTER_SECONDS", 7200.0)),
        sweep_interval_seconds=max(1.0, _get_float_env("RATE_LIMIT_SWEEP_INTERVAL_SECONDS", 3600.0)),
    )


@lru_cache(maxsize=1)
def get_failure_tracker_settings() -> FailureTrackerSettings:
    """
    Return cached failure tracker settings from environment variables.
    """

    return FailureTrackerSettings(
        max_retries_per_url=max(1, _get_int_env("FAILURE_TRACKER_MAX_RETRIES_PER_URL", 5)),
        default_cooldown_seconds=max(0.0, _get_float_env("FAILURE_TRACKER_DEFAULT_COOLDOWN_SECONDS", 300.0)),
        sensitive_failure_threshold=max(1, _get_int_env("FAILURE_TRACKER_SENSITIVE_FAILURE_THRESHOLD", 3)),
        sensitive_cooldown_seconds=max(0.0, _get_float_env("FAILURE_TRACKER_SENSITIVE_COOLDOWN_SECONDS", 600.0)),
        sensitive_domains=_get_list_env("RATE_LIMIT_SENSITIVE_DOMAINS", ("linkedin.com",)),
    )


@lru_cache(maxsize=1)
def get_loader_settings() -> LoaderSettings:
    """
    Return cached page loader settings from environment variables.
    """

    return LoaderSettings(
        navigation_max_attempts=max(1, _get_int_env("CRAWL_NAVIGATION_MAX_ATTEMPTS", 20)),
        navigation_max_delay_seconds=max(0.0, _get_float_env("CRAWL_NAVIGATION_MAX_DELAY_SECONDS", 5.0)),
        navigation_timeout_seconds=max(1.0, _get_float_env("CRAWL_NAVIGATION_TIMEOUT_SECONDS", 30.0)),
        content_max_retries=max(0, _get_int_env("CRAWL_CONTENT_MAX_RETRIES", 1)),
        auth_wall_patterns=_get_list_env("CRAWL_AUTH_WALL_PATTERNS", ("authwall", "login")),
        renavigate_on_parse_failure=_get_bool_env("CRAWL_RENAVIGATE_ON_PARSE_FAILURE", True),
    )


@lru_cache(maxsize=1)
def get_browser_settings() -> BrowserSettings:
    """
    Return cached browser pool settings from environment variables.
    """

    return BrowserSettings(
        normal_pool_size=max(1, _get_int_env("BROWSER_NORMAL_POOL_SIZE", 2)),
        incognito_pool_size=max(1, _get_int_env("BROWSER_INCOGNITO_POOL_SIZE", 2)),
        headless=_get_bool_env("BROWSER_HEADLESS", True),
        user_data_dir=str(Path(_get_str_env("BROWSER_USER_DATA_DIR", ".browser-profile")).expanduser()),
        viewport_width=max(320, _get_int_env("BROWSER_VIEWPORT_WIDTH", 1600)),
        viewport_height=max(240, _get_int_env("BROWSER_VIEWPORT_HEIGHT", 1200)),
    )


@lru_cache(maxsize=1)
def get_orchestrator_settings() -> OrchestratorSettings:
    """
    Return cached orchestrator settings from environment variables.
    """

    return OrchestratorSettings(
        link_scroll_passes=max(0, _get_int_env("CRAWL_LINK_SCROLL_PASSES", 5)),
        item_scroll_passes=max(0, _get_int_env("CRAWL_ITEM_SCROLL_PASSES", 1)),
        pending_item_limit=max(1, _get_int_env("CRAWL_PENDING_ITEM_LIMIT", 300)),
    )


@lru_cache(maxsize=1)
def get_parser_api_settings() -> ParserAPISettings:
    """
    Return cached parser service settings from environment variables.
    """

    return ParserAPISettings(
        base_url=_get_str_env("PARSER_API_BASE_URL", "http://127.0.0.1:8080").rstrip("/"),
        api_key=_get_optional_str_env("PARSER_API_KEY"),
        timeout_seconds=max(1.0, _get_float_env("PARSER_API_TIMEOUT_SECONDS", 30.0)),
        max_retries=max(0, _get_int_env("PARSER_API_MAX_RETRIES", 3)),
        backoff_initial_seconds=max(0.1, _get_float_env("PARSER_API_BACKOFF_INITIAL_SECONDS", 0.5)),
        backoff_multiplier=max(1.0, _get_float_env("PARSER_API_BACKOFF_MULTIPLIER", 2.0)),
    )


@lru_cache(maxsize=1)
def get_scanner_defaults() -> ScannerDefaults:
    """
    Return cached scanner settings location.
    """

    return ScannerDefaults(
        settings_path=_get_str_env("SCANNER_SETTINGS_PATH", "scanner_settings.json"),
        timezone=_get_str_env("SCANNER_TIMEZONE", "UTC"),
    )
