"""
tests/test_session_pool.py

Pytest unit tests for BrowserSessionPool.

Coverage
--------
- Never more than N sessions in use
- FIFO admission: queued callers enter in submission order
- Slot released when the task raises
- Invariant violation when admitted without a free slot
- Factory returning the wrong number of sessions
- close(): drains in-flight work, rejects new work, closes handles
"""

from __future__ import annotations

import asyncio

import pytest

from conftest import FakeClock, FakeSessionFactory, FakeWeb
from jobprobe.crawler.errors import PoolClosedError, PoolInvariantViolation
from jobprobe.crawler.session_pool import BrowserSessionPool
from jobprobe.crawler.sessions import BrowserSession


def _pool(web: FakeWeb, clock: FakeClock, *, size: int = 2, created: int | None = None) -> BrowserSessionPool:
    return BrowserSessionPool(
        name="test",
        factory=FakeSessionFactory(web, created=created),
        size=size,
        sleep=clock.sleep,
    )


class TestBound:
    def test_at_most_n_sessions_in_use(self, web: FakeWeb, clock: FakeClock) -> None:
        pool = _pool(web, clock, size=2)
        peak = 0
        started: list[int] = []

        async def task(index: int, session: BrowserSession) -> int:
            nonlocal peak
            started.append(index)
            peak = max(peak, pool.in_use_count)
            for _ in range(3):
                await asyncio.sleep(0)
            return index

        async def scenario() -> list[int]:
            await pool.start()
            return await asyncio.gather(
                *(pool.with_session(lambda session, i=i: task(i, session)) for i in range(6))
            )

        results = asyncio.run(scenario())

        assert results == list(range(6))
        assert peak == 2
        assert started == list(range(6))
        assert pool.in_use_count == 0

    def test_sessions_are_exclusive(self, web: FakeWeb, clock: FakeClock) -> None:
        pool = _pool(web, clock, size=3)
        holders: set[int] = set()
        overlaps = 0

        async def task(session: BrowserSession) -> None:
            nonlocal overlaps
            key = id(session)
            if key in holders:
                overlaps += 1
            holders.add(key)
            await asyncio.sleep(0)
            holders.discard(key)

        async def scenario() -> None:
            await pool.start()
            await asyncio.gather(*(pool.with_session(task) for _ in range(9)))

        asyncio.run(scenario())
        assert overlaps == 0

    def test_slot_released_after_error(self, web: FakeWeb, clock: FakeClock) -> None:
        pool = _pool(web, clock, size=1)

        async def boom(session: BrowserSession) -> None:
            raise ValueError("boom")

        async def ok(session: BrowserSession) -> str:
            return "ok"

        async def scenario() -> str:
            await pool.start()
            with pytest.raises(ValueError):
                await pool.with_session(boom)
            return await pool.with_session(ok)

        assert asyncio.run(scenario()) == "ok"
        assert pool.in_use_count == 0

    def test_waiters_admitted_in_submission_order(self, web: FakeWeb, clock: FakeClock) -> None:
        pool = _pool(web, clock, size=1)
        order: list[object] = []

        async def scenario() -> None:
            gate = asyncio.Event()

            async def hold(session: BrowserSession) -> None:
                order.append("holder")
                await gate.wait()

            async def record(index: int, session: BrowserSession) -> None:
                order.append(index)

            await pool.start()
            holder = asyncio.create_task(pool.with_session(hold))
            await asyncio.sleep(0)
            waiters = []
            for index in range(3):
                waiters.append(
                    asyncio.create_task(pool.with_session(lambda session, i=index: record(i, session)))
                )
                await asyncio.sleep(0)
            gate.set()
            await asyncio.gather(holder, *waiters)

        asyncio.run(scenario())

        assert order == ["holder", 0, 1, 2]


class TestInvariants:
    def test_admitted_without_free_slot_raises(self, web: FakeWeb, clock: FakeClock) -> None:
        pool = _pool(web, clock, size=2)

        async def noop(session: BrowserSession) -> None:
            return None

        async def scenario() -> None:
            await pool.start()
            for slot in pool.slots:
                slot.in_use = True
            await pool.with_session(noop)

        with pytest.raises(PoolInvariantViolation):
            asyncio.run(scenario())

    def test_factory_must_create_exactly_n(self, web: FakeWeb, clock: FakeClock) -> None:
        pool = _pool(web, clock, size=3, created=2)
        with pytest.raises(PoolInvariantViolation):
            asyncio.run(pool.start())

    def test_size_must_be_positive(self, web: FakeWeb) -> None:
        with pytest.raises(ValueError):
            BrowserSessionPool(name="bad", factory=FakeSessionFactory(web), size=0)

    def test_use_before_start_is_rejected(self, web: FakeWeb, clock: FakeClock) -> None:
        pool = _pool(web, clock)

        async def noop(session: BrowserSession) -> None:
            return None

        with pytest.raises(PoolClosedError):
            asyncio.run(pool.with_session(noop))


class TestClose:
    def test_close_drains_then_destroys(self, web: FakeWeb, clock: FakeClock) -> None:
        factory = FakeSessionFactory(web)
        pool = BrowserSessionPool(name="test", factory=factory, size=1, sleep=clock.sleep)
        finished: list[int] = []

        async def slow(index: int) -> None:
            for _ in range(5):
                await asyncio.sleep(0)
            finished.append(index)

        async def scenario() -> None:
            await pool.start()
            tasks = [
                asyncio.create_task(pool.with_session(lambda session, i=i: slow(i)))
                for i in range(3)
            ]
            await asyncio.sleep(0)
            await pool.close()
            await asyncio.gather(*tasks)

        asyncio.run(scenario())

        assert finished == [0, 1, 2]
        assert all(session.closed for session in factory.sessions)
        assert factory.shutdown_called is True
        assert 0.5 in clock.sleeps
        assert pool.is_closed is True

    def test_new_work_rejected_after_close(self, web: FakeWeb, clock: FakeClock) -> None:
        pool = _pool(web, clock)

        async def noop(session: BrowserSession) -> None:
            return None

        async def scenario() -> None:
            await pool.start()
            await pool.close()
            await pool.with_session(noop)

        with pytest.raises(PoolClosedError):
            asyncio.run(scenario())
