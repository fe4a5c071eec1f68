"""
jobprobe/scheduler/jobs.py

APScheduler-based cron trigger for scan cycles.

Schedule
--------
A single job (``scan_all``) runs ``CrawlOrchestrator.scan_all`` on the cron
rule stored in the scanner settings. Changing the rule removes the previous
job before the new one is installed; a rule of ``None`` disables scanning.

Sleep prevention follows the ``prevent_sleep`` toggle through the injected
``PowerManagementHook``.

Lifecycle
----------
``start()`` loads persisted settings, applies them and starts the scheduler on
the running event loop. ``shutdown()`` stops the scheduler and releases the
power hook. Both are wired into FastAPI via the ``lifespan`` in main.py.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from jobprobe.crawler.collaborators import NotificationSink, PowerManagementHook, SettingsStore
from jobprobe.crawler.notifications import LoggingNotificationSink
from jobprobe.crawler.orchestrator import CrawlOrchestrator
from jobprobe.domain.crawl import ScannerSettings

logger = logging.getLogger(__name__)

SCAN_JOB_ID = "scan_all"


@dataclass(frozen=True)
class CronRuleOption:
    name: str
    value: str


AVAILABLE_CRON_RULES: tuple[CronRuleOption, ...] = (
    CronRuleOption(name="Every 30 minutes", value="*/30 * * * *"),
    CronRuleOption(name="Every hour", value="0 * * * *"),
    CronRuleOption(name="Every 2 hours", value="0 */2 * * *"),
    CronRuleOption(name="Every 4 hours", value="0 */4 * * *"),
    CronRuleOption(name="Every 8 hours", value="0 */8 * * *"),
    CronRuleOption(name="Every 12 hours", value="0 */12 * * *"),
    CronRuleOption(name="Every day", value="0 0 * * *"),
    CronRuleOption(name="Every 3 days", value="0 0 */3 * *"),
    CronRuleOption(name="Every week", value="0 0 * * 0"),
)


class ScanScheduler:
    """
    Owns the cron job and the power hook, and keeps both in line with the
    current scanner settings.
    """

    def __init__(
        self,
        *,
        orchestrator: CrawlOrchestrator,
        settings_store: SettingsStore,
        power_hook: PowerManagementHook,
        notifier: NotificationSink | None = None,
        scheduler: AsyncIOScheduler | None = None,
        timezone: str = "UTC",
    ) -> None:
        self._orchestrator = orchestrator
        self._settings_store = settings_store
        self._power_hook = power_hook
        self._notifier = notifier
        self._timezone = timezone
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone)
        # Everything is off until the first apply.
        self._settings = ScannerSettings(
            cron_rule=None,
            prevent_sleep=False,
            use_sound=False,
            email_alerts_enabled=True,
        )

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._scheduler

    def start(self) -> ScannerSettings:
        settings = self._settings_store.load()
        self.apply_settings(settings)
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info("Scan scheduler started cron_rule=%s", self._settings.cron_rule)
        return self._settings

    def get_settings(self) -> ScannerSettings:
        return self._settings

    def update_settings(self, settings: ScannerSettings) -> ScannerSettings:
        """
        Apply `settings` and persist them.
        """

        self.apply_settings(settings)
        self._settings_store.save(self._settings)
        return self._settings

    def apply_settings(self, settings: ScannerSettings) -> None:
        """
        Swap the cron job and power hook to match `settings`.

        Raises ValueError for an unparseable cron rule; nothing is changed then.
        """

        trigger = (
            CronTrigger.from_crontab(settings.cron_rule, timezone=self._timezone)
            if settings.cron_rule
            else None
        )

        if settings.cron_rule != self._settings.cron_rule:
            if self._scheduler.get_job(SCAN_JOB_ID) is not None:
                logger.info("Stopping previous scan schedule cron_rule=%s", self._settings.cron_rule)
                self._scheduler.remove_job(SCAN_JOB_ID)
            if trigger is not None:
                self._scheduler.add_job(
                    self._orchestrator.scan_all,
                    trigger=trigger,
                    id=SCAN_JOB_ID,
                    name="Scan all target links",
                    replace_existing=True,
                    max_instances=1,
                    coalesce=True,
                    misfire_grace_time=300,
                )
                logger.info("Scan schedule installed cron_rule=%s", settings.cron_rule)

        if settings.prevent_sleep != self._settings.prevent_sleep:
            if self._power_hook.is_active:
                logger.info("Stopping previous sleep prevention")
                self._power_hook.release()
            if settings.prevent_sleep:
                self._power_hook.acquire()

        if isinstance(self._notifier, LoggingNotificationSink):
            self._notifier.silent = not settings.use_sound

        self._orchestrator.scanner_settings = settings
        self._settings = settings
        logger.info("Scanner settings applied")

    def shutdown(self) -> None:
        if self._scheduler.running:
            logger.info("Stopping scan scheduler")
            self._scheduler.shutdown(wait=False)
        if self._power_hook.is_active:
            logger.info("Stopping sleep prevention")
            self._power_hook.release()
