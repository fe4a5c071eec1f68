"""
Sleep prevention backed by the host's inhibitor command.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from collections.abc import Callable

from jobprobe.crawler.collaborators import PowerManagementHook
from jobprobe.crawler.logging_utils import log_event

logger = logging.getLogger(__name__)


def default_inhibit_command() -> list[str] | None:
    if sys.platform == "darwin":
        return ["caffeinate", "-i"]
    if sys.platform.startswith("linux") and shutil.which("systemd-inhibit"):
        return [
            "systemd-inhibit",
            "--what=idle:sleep",
            "--why=jobprobe scan schedule",
            "sleep",
            "infinity",
        ]
    return None


class SleepInhibitor(PowerManagementHook):
    """
    Holds a child inhibitor process while sleep prevention is on.

    On hosts without an inhibitor command acquire/release only log.
    """

    def __init__(
        self,
        *,
        command: list[str] | None = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ) -> None:
        self._command = command if command is not None else default_inhibit_command()
        self._popen = popen
        self._process: subprocess.Popen | None = None

    @property
    def is_active(self) -> bool:
        return self._process is not None

    def acquire(self) -> None:
        if self._process is not None:
            return
        if not self._command:
            log_event(logger, logging.WARNING, "sleep_inhibitor_unavailable", platform=sys.platform)
            return
        try:
            self._process = self._popen(
                self._command,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as exc:
            log_event(
                logger,
                logging.WARNING,
                "sleep_inhibitor_start_failed",
                command=self._command,
                error=str(exc),
            )
            return
        log_event(logger, logging.INFO, "sleep_inhibitor_started", pid=self._process.pid)

    def release(self) -> None:
        if self._process is None:
            return
        process = self._process
        self._process = None
        process.terminate()
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()
        log_event(logger, logging.INFO, "sleep_inhibitor_stopped", pid=process.pid)
