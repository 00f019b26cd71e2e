# src/hoursync/scheduling/limiter.py

from __future__ import annotations

"""
Priority-aware admission primitives.

Both primitives queue waiters in a heap ordered by (priority, submission order),
so a REALTIME waiter submitted late is still admitted before an older BULK waiter,
and waiters of the same tier are admitted FIFO. Neither primitive ever rejects:
callers simply suspend until admitted, and there is no queue depth limit.
"""

import asyncio
import contextlib
import heapq
import itertools
import logging
from collections import deque
from collections.abc import AsyncIterator
from enum import IntEnum

logger = logging.getLogger(__name__)


class Priority(IntEnum):
    """Scheduling tier. Lower value is served first."""

    REALTIME = 0
    BULK = 1
    BACKGROUND = 2


class _WaiterQueue:
    """Heap of futures keyed by (priority, seq). Cancelled futures are skipped lazily."""

    def __init__(self) -> None:
        self._heap: list[tuple[int, int, asyncio.Future[None]]] = []
        self._seq = itertools.count()

    def push(self, priority: Priority) -> asyncio.Future[None]:
        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        heapq.heappush(self._heap, (int(priority), next(self._seq), fut))
        return fut

    def pop(self) -> asyncio.Future[None] | None:
        while self._heap:
            _, _, fut = heapq.heappop(self._heap)
            if not fut.done():
                return fut
        return None

    def __len__(self) -> int:
        return sum(1 for _, _, fut in self._heap if not fut.done())

    def __bool__(self) -> bool:
        return any(not fut.done() for _, _, fut in self._heap)


class PriorityRateLimiter:
    """
    Admit at most `rate` acquisitions in any sliding window of `interval` seconds.

    Admission times are kept in a log; a waiter is admitted only while the log
    holds fewer than `rate` entries younger than `interval`. When the budget is
    exhausted a single timer is armed for the moment the oldest entry expires.
    """

    def __init__(self, rate: int, interval: float, *, name: str = "limiter") -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.rate = int(rate)
        self.interval = float(interval)
        self.name = name

        self._waiters = _WaiterQueue()
        self._admitted: deque[float] = deque()
        self._timer: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> int:
        return len(self._waiters)

    async def acquire(self, priority: Priority = Priority.BULK) -> None:
        fut = self._waiters.push(priority)
        self._pump()
        await fut

    def _pump(self) -> None:
        loop = asyncio.get_running_loop()
        now = loop.time()

        while self._admitted and now - self._admitted[0] >= self.interval:
            self._admitted.popleft()

        while len(self._admitted) < self.rate:
            fut = self._waiters.pop()
            if fut is None:
                break
            self._admitted.append(now)
            fut.set_result(None)

        if self._waiters and self._timer is None:
            delay = max(0.0, self._admitted[0] + self.interval - now)
            self._timer = loop.call_later(delay, self._on_timer)
            logger.debug("%s saturated: %d waiting, next slot in %.3fs", self.name, self.pending, delay)

    def _on_timer(self) -> None:
        self._timer = None
        self._pump()


class PrioritySemaphore:
    """
    Concurrency gate with priority ordering. With concurrency=1 it serializes
    everything that passes through it; priority only decides who goes next.
    """

    def __init__(self, concurrency: int = 1) -> None:
        if concurrency <= 0:
            raise ValueError("concurrency must be positive")
        self.concurrency = int(concurrency)
        self._active = 0
        self._waiters = _WaiterQueue()

    @property
    def active(self) -> int:
        return self._active

    async def acquire(self, priority: Priority = Priority.BULK) -> None:
        if self._active < self.concurrency and not self._waiters:
            self._active += 1
            return

        fut = self._waiters.push(priority)
        try:
            await fut
        except asyncio.CancelledError:
            # Ownership may already have been handed to us; pass it on.
            if fut.done() and not fut.cancelled():
                self.release()
            raise

    def release(self) -> None:
        nxt = self._waiters.pop()
        if nxt is not None:
            # Hand the slot over directly; _active stays unchanged.
            nxt.set_result(None)
            return
        self._active = max(0, self._active - 1)

    @contextlib.asynccontextmanager
    async def slot(self, priority: Priority = Priority.BULK) -> AsyncIterator[None]:
        await self.acquire(priority)
        try:
            yield
        finally:
            self.release()
