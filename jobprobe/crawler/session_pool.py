"""
Fixed-size pool of browser sessions behind a bounded FIFO admission queue.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from jobprobe.crawler.errors import PoolClosedError, PoolInvariantViolation
from jobprobe.crawler.logging_utils import log_event
from jobprobe.crawler.sessions import BrowserSession, BrowserSessionFactory

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class SessionSlot:
    id: int
    handle: BrowserSession
    in_use: bool = False


class BrowserSessionPool:
    """
    Hands out exclusive sessions to at most `size` concurrent callers.

    Callers beyond capacity wait in FIFO order. Slots are created once by
    `start()` and destroyed together by `close()`.
    """

    def __init__(
        self,
        *,
        name: str,
        factory: BrowserSessionFactory,
        size: int,
        close_grace_seconds: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if size < 1:
            raise ValueError("Pool size must be at least 1.")
        self.name = name
        self._factory = factory
        self._size = size
        self._close_grace_seconds = close_grace_seconds
        self._sleep = sleep
        self._slots: list[SessionSlot] = []
        self._admission = asyncio.Semaphore(size)
        self._pending = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._started = False
        self._closed = False

    @property
    def size(self) -> int:
        return self._size

    @property
    def slots(self) -> list[SessionSlot]:
        return list(self._slots)

    @property
    def in_use_count(self) -> int:
        return sum(1 for slot in self._slots if slot.in_use)

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        if self._started:
            return
        handles = await self._factory.create_sessions(self._size)
        if len(handles) != self._size:
            raise PoolInvariantViolation(
                f"pool {self.name}: factory created {len(handles)} sessions, expected {self._size}"
            )
        self._slots = [SessionSlot(id=index, handle=handle) for index, handle in enumerate(handles)]
        self._started = True
        log_event(logger, logging.INFO, "session_pool_started", pool=self.name, size=self._size)

    async def with_session(self, fn: Callable[[BrowserSession], Awaitable[T]]) -> T:
        """
        Run `fn` with an exclusive session and release it on every exit path.
        """

        if self._closed:
            raise PoolClosedError(f"pool {self.name} is closed")
        if not self._started:
            raise PoolClosedError(f"pool {self.name} has not been started")

        self._pending += 1
        self._idle.clear()
        try:
            async with self._admission:
                slot = self._claim_slot()
                try:
                    return await fn(slot.handle)
                finally:
                    slot.in_use = False
        finally:
            self._pending -= 1
            if self._pending == 0:
                self._idle.set()

    async def close(self) -> None:
        """
        Stop accepting work, wait for queued and running tasks, then destroy sessions.
        """

        if self._closed:
            return
        self._closed = True
        log_event(logger, logging.INFO, "session_pool_draining", pool=self.name, pending=self._pending)
        await self._idle.wait()
        await self._sleep(self._close_grace_seconds)

        for slot in self._slots:
            try:
                await slot.handle.close()
            except Exception as exc:  # noqa: BLE001
                log_event(
                    logger,
                    logging.WARNING,
                    "session_close_failed",
                    pool=self.name,
                    slot_id=slot.id,
                    error=str(exc),
                )
        await self._factory.shutdown()
        log_event(logger, logging.INFO, "session_pool_closed", pool=self.name)

    def _claim_slot(self) -> SessionSlot:
        for slot in self._slots:
            if not slot.in_use:
                slot.in_use = True
                return slot
        raise PoolInvariantViolation(f"pool {self.name}: admitted but no session slot is free")
