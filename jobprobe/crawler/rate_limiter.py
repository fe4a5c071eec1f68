"""
Domain-aware request rate limiter.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from jobprobe.config import RateLimitSettings
from jobprobe.crawler.domains import is_sensitive_domain, resolve_domain
from jobprobe.crawler.logging_utils import log_event
from jobprobe.crawler.runtime import RunningFlag

logger = logging.getLogger(__name__)


@dataclass
class DomainRateState:
    """
    Request cadence for one domain. Times are monotonic seconds.
    """

    domain: str
    last_request_at: float | None = None
    request_count_in_window: int = 0
    cooldown_until: float | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)


class DomainRateLimiter:
    """
    Enforces minimum spacing and periodic cooldowns per domain.

    Each domain's state is serialized through its own lock, so concurrent
    tasks hitting the same domain queue behind each other while other
    domains proceed independently.
    """

    def __init__(
        self,
        *,
        settings: RateLimitSettings,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
        running: RunningFlag | None = None,
    ) -> None:
        self._settings = settings
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._running = running or RunningFlag()
        self._states: dict[str, DomainRateState] = {}
        self._sweeper: asyncio.Task[None] | None = None

    def state_for(self, url: str) -> DomainRateState | None:
        return self._states.get(resolve_domain(url))

    @property
    def tracked_domains(self) -> list[str]:
        return sorted(self._states)

    async def await_slot(self, url: str) -> None:
        """
        Suspend until a request to `url` is allowed.

        Returns early, without counting a request, once shutdown has begun.
        """

        domain = resolve_domain(url)
        if not domain or not self._running.is_running:
            return

        state = self._states.get(domain)
        if state is None:
            state = DomainRateState(domain=domain)
            self._states[domain] = state

        sensitive = is_sensitive_domain(domain, self._settings.sensitive_domains)
        async with state.lock:
            now = self._clock()
            if state.cooldown_until is not None and state.cooldown_until > now:
                remaining = state.cooldown_until - now
                log_event(
                    logger,
                    logging.INFO,
                    "rate_limit_cooldown_wait",
                    domain=domain,
                    wait_seconds=round(remaining, 3),
                )
                if not await self._running.sleep(remaining, self._sleep):
                    return

            min_delay = (
                self._settings.sensitive_min_delay_seconds
                if sensitive
                else self._settings.default_min_delay_seconds
            )
            if state.last_request_at is not None:
                elapsed = self._clock() - state.last_request_at
                if elapsed < min_delay:
                    wait_seconds = (min_delay - elapsed) + self._rng.uniform(
                        0.0, self._settings.jitter_max_seconds
                    )
                    log_event(
                        logger,
                        logging.DEBUG,
                        "rate_limit_spacing_wait",
                        domain=domain,
                        wait_seconds=round(wait_seconds, 3),
                    )
                    if not await self._running.sleep(wait_seconds, self._sleep):
                        return

                if self._clock() - state.last_request_at > self._settings.window_reset_seconds:
                    state.request_count_in_window = 0

            now = self._clock()
            state.request_count_in_window += 1
            state.last_request_at = now

            if sensitive and state.request_count_in_window >= self._settings.sensitive_request_threshold:
                cooldown = self._settings.sensitive_cooldown_seconds
                state.cooldown_until = now + cooldown
                state.request_count_in_window = 0
                log_event(
                    logger,
                    logging.WARNING,
                    "rate_limit_cooldown_started",
                    domain=domain,
                    cooldown_seconds=cooldown,
                )
                await self._running.sleep(cooldown, self._sleep)

    def sweep(self) -> int:
        """
        Drop domains idle for longer than the stale window. Returns removed count.
        """

        cutoff = self._clock() - self._settings.stale_after_seconds
        stale = [
            domain
            for domain, state in self._states.items()
            if state.last_request_at is not None
            and state.last_request_at < cutoff
            and not state.lock.locked()
        ]
        for domain in stale:
            del self._states[domain]
        if stale:
            log_event(
                logger,
                logging.DEBUG,
                "rate_limit_states_swept",
                removed=len(stale),
                remaining=len(self._states),
            )
        return len(stale)

    def start_sweeper(self) -> None:
        """
        Start the hourly background sweep on the running event loop.
        """

        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None

    async def _sweep_forever(self) -> None:
        while True:
            await self._sleep(self._settings.sweep_interval_seconds)
            self.sweep()
