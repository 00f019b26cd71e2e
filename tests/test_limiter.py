# tests/test_limiter.py

from __future__ import annotations

import asyncio

import pytest

from hoursync.scheduling import Priority, PriorityRateLimiter, PrioritySemaphore


@pytest.mark.asyncio
async def test_rate_ceiling_holds_in_every_window() -> None:
    rate, interval = 100, 0.05
    limiter = PriorityRateLimiter(rate, interval, name="test")
    loop = asyncio.get_running_loop()
    admitted: list[float] = []

    async def one() -> None:
        await limiter.acquire(Priority.BULK)
        admitted.append(loop.time())

    await asyncio.gather(*(one() for _ in range(1000)))

    admitted.sort()
    assert len(admitted) == 1000
    # Any rate+1 consecutive admissions span at least one full window.
    for i in range(len(admitted) - rate):
        assert admitted[i + rate] - admitted[i] >= interval - 0.01


@pytest.mark.asyncio
async def test_first_burst_is_admitted_immediately() -> None:
    limiter = PriorityRateLimiter(3, 10.0)
    await asyncio.wait_for(asyncio.gather(*(limiter.acquire() for _ in range(3))), timeout=0.5)
    assert limiter.pending == 0


@pytest.mark.asyncio
async def test_realtime_waiter_overtakes_older_bulk_waiter() -> None:
    limiter = PriorityRateLimiter(1, 0.05)
    await limiter.acquire()  # budget exhausted

    order: list[str] = []

    async def waiter(label: str, priority: Priority) -> None:
        await limiter.acquire(priority)
        order.append(label)

    bulk = asyncio.create_task(waiter("bulk", Priority.BULK))
    await asyncio.sleep(0)
    background = asyncio.create_task(waiter("background", Priority.BACKGROUND))
    await asyncio.sleep(0)
    realtime = asyncio.create_task(waiter("realtime", Priority.REALTIME))
    await asyncio.sleep(0)
    assert limiter.pending == 3

    await asyncio.gather(bulk, background, realtime)
    assert order == ["realtime", "bulk", "background"]


@pytest.mark.asyncio
async def test_same_priority_is_fifo() -> None:
    limiter = PriorityRateLimiter(1, 0.02)
    await limiter.acquire()

    order: list[int] = []

    async def waiter(i: int) -> None:
        await limiter.acquire(Priority.BULK)
        order.append(i)

    tasks = []
    for i in range(5):
        tasks.append(asyncio.create_task(waiter(i)))
        await asyncio.sleep(0)

    await asyncio.gather(*tasks)
    assert order == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_consume_a_slot() -> None:
    limiter = PriorityRateLimiter(1, 0.05)
    await limiter.acquire()

    doomed = asyncio.create_task(limiter.acquire(Priority.REALTIME))
    await asyncio.sleep(0)
    doomed.cancel()
    with pytest.raises(asyncio.CancelledError):
        await doomed

    await asyncio.wait_for(limiter.acquire(Priority.BULK), timeout=1.0)


def test_limiter_rejects_bad_parameters() -> None:
    with pytest.raises(ValueError):
        PriorityRateLimiter(0, 1.0)
    with pytest.raises(ValueError):
        PriorityRateLimiter(1, 0)
    with pytest.raises(ValueError):
        PrioritySemaphore(0)


@pytest.mark.asyncio
async def test_semaphore_serializes() -> None:
    gate = PrioritySemaphore(1)
    in_flight = 0
    peak = 0

    async def work() -> None:
        nonlocal in_flight, peak
        async with gate.slot(Priority.BULK):
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.001)
            in_flight -= 1

    await asyncio.gather(*(work() for _ in range(10)))
    assert peak == 1
    assert gate.active == 0


@pytest.mark.asyncio
async def test_semaphore_hands_slot_to_highest_priority() -> None:
    gate = PrioritySemaphore(1)
    await gate.acquire(Priority.BULK)

    order: list[str] = []

    async def waiter(label: str, priority: Priority) -> None:
        async with gate.slot(priority):
            order.append(label)

    bulk = asyncio.create_task(waiter("bulk", Priority.BULK))
    await asyncio.sleep(0)
    realtime = asyncio.create_task(waiter("realtime", Priority.REALTIME))
    await asyncio.sleep(0)

    gate.release()
    await asyncio.gather(bulk, realtime)
    assert order == ["realtime", "bulk"]
    assert gate.active == 0
