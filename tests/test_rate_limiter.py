"""
tests/test_rate_limiter.py

Pytest unit tests for DomainRateLimiter and domain resolution.

Coverage
--------
- Minimum spacing for ordinary and sensitive domains (jitter bounded)
- Independent domains do not wait on each other
- Sensitive-domain cooldown after the request threshold
- Window counter reset after an hour of inactivity
- Stale state sweeping
- Domain normalisation (www., port, scheme-less)
- Shutdown cuts spacing and cooldown waits short
"""

from __future__ import annotations

import asyncio
import random

import pytest

from conftest import FakeClock
from jobprobe.config import RateLimitSettings
from jobprobe.crawler.domains import is_sensitive_domain, resolve_domain
from jobprobe.crawler.rate_limiter import DomainRateLimiter
from jobprobe.crawler.runtime import RunningFlag


def _limiter(clock: FakeClock, **overrides: object) -> DomainRateLimiter:
    settings = RateLimitSettings(**overrides)  # type: ignore[arg-type]
    return DomainRateLimiter(settings=settings, clock=clock, sleep=clock.sleep, rng=random.Random(3))


async def _admit(limiter: DomainRateLimiter, clock: FakeClock, url: str, times: int) -> list[float]:
    admitted: list[float] = []
    for _ in range(times):
        await limiter.await_slot(url)
        state = limiter.state_for(url)
        assert state is not None
        admitted.append(state.last_request_at)  # type: ignore[arg-type]
    return admitted


# ---------------------------------------------------------------------------
# Domain resolution
# ---------------------------------------------------------------------------


class TestResolveDomain:
    def test_strips_www_and_port(self) -> None:
        assert resolve_domain("https://www.Example.com:8443/jobs?q=1") == "example.com"

    def test_scheme_less_url(self) -> None:
        assert resolve_domain("linkedin.com/jobs/search") == "linkedin.com"

    def test_subdomain_of_sensitive_domain_is_sensitive(self) -> None:
        assert is_sensitive_domain("uk.linkedin.com", ("linkedin.com",))
        assert not is_sensitive_domain("notlinkedin.com", ("linkedin.com",))
        assert not is_sensitive_domain("", ("linkedin.com",))


# ---------------------------------------------------------------------------
# Spacing
# ---------------------------------------------------------------------------


class TestSpacing:
    def test_first_request_is_immediate(self, clock: FakeClock) -> None:
        limiter = _limiter(clock)
        asyncio.run(limiter.await_slot("https://example.com/a"))
        assert clock.sleeps == []

    def test_ordinary_domain_waits_min_delay_plus_bounded_jitter(self, clock: FakeClock) -> None:
        limiter = _limiter(clock)
        admitted = asyncio.run(_admit(limiter, clock, "https://example.com/jobs", 4))

        gaps = [later - earlier for earlier, later in zip(admitted, admitted[1:])]
        assert all(2.0 - 1e-9 <= gap <= 5.0 + 1e-9 for gap in gaps)

    def test_sensitive_domain_waits_longer(self, clock: FakeClock) -> None:
        limiter = _limiter(clock)
        admitted = asyncio.run(_admit(limiter, clock, "https://www.linkedin.com/jobs", 3))

        gaps = [later - earlier for earlier, later in zip(admitted, admitted[1:])]
        assert all(8.0 - 1e-9 <= gap <= 11.0 + 1e-9 for gap in gaps)

    def test_no_wait_once_min_delay_already_elapsed(self, clock: FakeClock) -> None:
        limiter = _limiter(clock)

        async def scenario() -> None:
            await limiter.await_slot("https://example.com/a")
            clock.advance(30)
            await limiter.await_slot("https://example.com/b")

        asyncio.run(scenario())
        assert clock.sleeps == []

    def test_domains_are_independent(self, clock: FakeClock) -> None:
        limiter = _limiter(clock)

        async def scenario() -> None:
            await limiter.await_slot("https://example.com/a")
            await limiter.await_slot("https://another.org/a")
            await limiter.await_slot("https://third.net/a")

        asyncio.run(scenario())
        assert clock.sleeps == []
        assert limiter.tracked_domains == ["another.org", "example.com", "third.net"]

    def test_concurrent_callers_on_one_domain_are_serialized(self, clock: FakeClock) -> None:
        limiter = _limiter(clock)
        admitted: list[float] = []

        async def one() -> None:
            await limiter.await_slot("https://example.com/x")
            admitted.append(clock())

        async def scenario() -> None:
            await asyncio.gather(*(one() for _ in range(4)))

        asyncio.run(scenario())
        admitted.sort()
        gaps = [later - earlier for earlier, later in zip(admitted, admitted[1:])]
        assert len(admitted) == 4
        assert all(gap >= 2.0 - 1e-9 for gap in gaps)


# ---------------------------------------------------------------------------
# Sensitive cooldown
# ---------------------------------------------------------------------------


class TestSensitiveCooldown:
    def test_eleventh_request_waits_out_the_cooldown(self, clock: FakeClock) -> None:
        limiter = _limiter(clock)
        admitted = asyncio.run(_admit(limiter, clock, "https://www.linkedin.com/jobs", 11))

        assert admitted[10] - admitted[9] >= 300.0 - 1e-6
        assert 300.0 in clock.sleeps

    def test_counter_resets_after_cooldown(self, clock: FakeClock) -> None:
        limiter = _limiter(clock)
        asyncio.run(_admit(limiter, clock, "https://linkedin.com/jobs", 10))

        state = limiter.state_for("https://linkedin.com/jobs")
        assert state is not None
        assert state.request_count_in_window == 0
        assert state.cooldown_until is not None

    def test_ordinary_domain_never_cools_down(self, clock: FakeClock) -> None:
        limiter = _limiter(clock)
        asyncio.run(_admit(limiter, clock, "https://example.com/jobs", 12))

        state = limiter.state_for("https://example.com/jobs")
        assert state is not None
        assert state.cooldown_until is None
        assert state.request_count_in_window == 12

    def test_custom_threshold(self, clock: FakeClock) -> None:
        limiter = _limiter(clock, sensitive_request_threshold=2, sensitive_cooldown_seconds=60.0)
        admitted = asyncio.run(_admit(limiter, clock, "https://linkedin.com/jobs", 3))

        assert admitted[2] - admitted[1] >= 60.0 - 1e-6


# ---------------------------------------------------------------------------
# Window reset and sweeping
# ---------------------------------------------------------------------------


class TestMaintenance:
    def test_window_counter_resets_after_an_idle_hour(self, clock: FakeClock) -> None:
        limiter = _limiter(clock)

        async def scenario() -> None:
            await _admit(limiter, clock, "https://linkedin.com/jobs", 5)
            clock.advance(3601)
            await limiter.await_slot("https://linkedin.com/jobs")

        asyncio.run(scenario())
        state = limiter.state_for("https://linkedin.com/jobs")
        assert state is not None
        assert state.request_count_in_window == 1

    def test_sweep_removes_only_stale_domains(self, clock: FakeClock) -> None:
        limiter = _limiter(clock)

        async def scenario() -> None:
            await limiter.await_slot("https://old.example.com/")
            clock.advance(7300)
            await limiter.await_slot("https://fresh.example.com/")

        asyncio.run(scenario())
        removed = limiter.sweep()

        assert removed == 1
        assert limiter.tracked_domains == ["fresh.example.com"]

    def test_sweeper_task_runs_and_stops(self, clock: FakeClock) -> None:
        limiter = _limiter(clock, sweep_interval_seconds=10.0, stale_after_seconds=5.0)

        async def scenario() -> list[str]:
            await limiter.await_slot("https://example.com/")
            limiter.start_sweeper()
            for _ in range(5):
                await asyncio.sleep(0)
            await limiter.stop_sweeper()
            return limiter.tracked_domains

        assert asyncio.run(scenario()) == []

    @pytest.mark.parametrize("url", ["", "   "])
    def test_urls_without_host_pass_through(self, clock: FakeClock, url: str) -> None:
        limiter = _limiter(clock)
        asyncio.run(limiter.await_slot(url))
        assert limiter.tracked_domains == []


# ---------------------------------------------------------------------------
# Shutdown
# ---------------------------------------------------------------------------


class TestShutdown:
    def _limiter(self, clock: FakeClock, running: RunningFlag) -> DomainRateLimiter:
        return DomainRateLimiter(
            settings=RateLimitSettings(),
            clock=clock,
            sleep=clock.sleep,
            rng=random.Random(3),
            running=running,
        )

    def test_stop_during_cooldown_returns_immediately_afterwards(self, clock: FakeClock) -> None:
        running = RunningFlag()
        limiter = self._limiter(clock, running)
        url = "https://www.linkedin.com/jobs"

        async def scenario() -> int:
            await _admit(limiter, clock, url, 9)
            clock.on_sleep = lambda seconds: running.stop() if seconds >= 300.0 else None
            await limiter.await_slot(url)
            sleeps_after_stop = len(clock.sleeps)
            await limiter.await_slot(url)
            return sleeps_after_stop

        sleeps_after_stop = asyncio.run(scenario())

        assert running.is_running is False
        assert len(clock.sleeps) == sleeps_after_stop
        state = limiter.state_for(url)
        assert state is not None
        assert state.request_count_in_window == 0

    def test_stop_during_spacing_wait_does_not_count_request(self, clock: FakeClock) -> None:
        running = RunningFlag()
        limiter = self._limiter(clock, running)

        async def scenario() -> None:
            await limiter.await_slot("https://example.com/a")
            clock.on_sleep = lambda seconds: running.stop()
            await limiter.await_slot("https://example.com/b")

        asyncio.run(scenario())

        state = limiter.state_for("https://example.com/a")
        assert state is not None
        assert state.request_count_in_window == 1
