"""
JSON file persistence for scanner settings.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any

from jobprobe.crawler.collaborators import SettingsStore
from jobprobe.domain.crawl import ScannerSettings

logger = logging.getLogger(__name__)

HOURLY_CRON_RULE = "0 * * * *"

# Applied when no settings file exists yet.
FIRST_RUN_SETTINGS = ScannerSettings(
    cron_rule=HOURLY_CRON_RULE,
    prevent_sleep=True,
    use_sound=True,
    email_alerts_enabled=True,
)

# Fill keys missing from files written by older versions.
MIGRATION_SETTINGS = ScannerSettings(
    cron_rule=None,
    prevent_sleep=False,
    use_sound=False,
    email_alerts_enabled=True,
)

_FIELD_NAMES = {field.name for field in fields(ScannerSettings)}


class JsonSettingsStore(SettingsStore):
    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> ScannerSettings:
        if not self._path.exists():
            logger.info("No scanner settings at %s, using defaults", self._path)
            return FIRST_RUN_SETTINGS

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Unreadable scanner settings at %s, using defaults: %s", self._path, exc)
            return FIRST_RUN_SETTINGS
        if not isinstance(raw, dict):
            logger.warning("Scanner settings at %s are not an object, using defaults", self._path)
            return FIRST_RUN_SETTINGS

        merged: dict[str, Any] = asdict(MIGRATION_SETTINGS)
        merged.update({key: value for key, value in raw.items() if key in _FIELD_NAMES})
        settings = ScannerSettings(**merged)
        logger.info("Loaded scanner settings from %s: %s", self._path, merged)
        return settings

    def save(self, settings: ScannerSettings) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(asdict(settings), indent=2), encoding="utf-8")
        logger.info("Saved scanner settings to %s", self._path)
