"""
Process-wide "still running" flag read at every suspension point.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable


class RunningFlag:
    """
    Cleared once on shutdown so in-flight retry loops stop retrying.

    Waits started through `sleep()` are cut short by `stop()`, which lets
    pool draining finish without sitting out cooldowns or scroll delays.
    """

    def __init__(self, running: bool = True) -> None:
        self._running = running
        self._sleepers: set[asyncio.Future[None]] = set()

    @property
    def is_running(self) -> bool:
        return self._running

    def stop(self) -> None:
        self._running = False
        for sleeper in list(self._sleepers):
            sleeper.cancel()

    async def sleep(
        self,
        seconds: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> bool:
        """
        Wait `seconds` unless stopped first. Returns whether still running.
        """

        if not self._running:
            return False
        sleeper = asyncio.ensure_future(sleep(seconds))
        self._sleepers.add(sleeper)
        try:
            await sleeper
        except asyncio.CancelledError:
            # Only swallow the cancellation issued by stop().
            if self._running or not sleeper.cancelled():
                raise
        finally:
            self._sleepers.discard(sleeper)
        return self._running
