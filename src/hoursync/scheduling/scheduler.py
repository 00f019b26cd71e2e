# src/hoursync/scheduling/scheduler.py

from __future__ import annotations

"""
Request scheduler shared by every workload.

- One PriorityRateLimiter per provider credential (reads round-robin across them).
- One PrioritySemaphore(1) for all workspace writes, program-wide.
- The write holding that gate takes its rate permits at REALTIME, so a queued
  bulk read backlog can never sit between the gate and the realtime writes
  waiting behind it.

Transport details (URLs, payloads) belong to the provider clients, not here.
"""

import itertools
import logging
from collections.abc import Awaitable, Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import TypeVar

from .limiter import Priority, PriorityRateLimiter, PrioritySemaphore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Provider(StrEnum):
    TIME_TRACKING = "time_tracking"
    WORKSPACE = "workspace"


@dataclass(slots=True, frozen=True)
class Permit:
    """
    Proof that a rate slot was granted.

    credential is the index of the credential whose limiter admitted the request;
    the provider client must send the request with that credential.
    """

    provider: Provider
    credential: int
    priority: Priority


class RequestScheduler:
    def __init__(
        self,
        limiters: Mapping[Provider, Sequence[PriorityRateLimiter]],
        *,
        write_concurrency: int = 1,
    ) -> None:
        self._limiters: dict[Provider, list[PriorityRateLimiter]] = {}
        self._cursors: dict[Provider, Iterator[int]] = {}
        for provider, pool in limiters.items():
            pool = list(pool)
            if not pool:
                raise ValueError(f"no limiter configured for {provider}")
            self._limiters[provider] = pool
            self._cursors[provider] = itertools.cycle(range(len(pool)))

        self._write_gate = PrioritySemaphore(write_concurrency)

    @classmethod
    def from_settings(cls, settings) -> "RequestScheduler":
        harvest = PriorityRateLimiter(
            settings.harvest_rate,
            settings.harvest_interval_seconds,
            name="harvest",
        )
        notion = [
            PriorityRateLimiter(settings.notion_rate, settings.notion_interval_seconds, name=f"notion[{i}]")
            for i in range(max(1, len(settings.notion_tokens)))
        ]
        return cls({Provider.TIME_TRACKING: [harvest], Provider.WORKSPACE: notion})

    def credentials(self, provider: Provider) -> int:
        return len(self._limiters[provider])

    async def acquire_read(self, provider: Provider, priority: Priority = Priority.BULK) -> Permit:
        """Suspend until a rate slot for `provider` is granted."""
        index = next(self._cursors[provider])
        await self._limiters[provider][index].acquire(priority)
        return Permit(provider=provider, credential=index, priority=priority)

    async def acquire_write(
        self,
        operation: Callable[[], Awaitable[T]],
        priority: Priority = Priority.BULK,
    ) -> T:
        """
        Run `operation` while holding the program-wide write slot.

        `priority` only orders writers at the gate. The operation takes its rate
        permits with acquire_write_permit() per attempt, so writes still count
        against the provider budget like any other request.
        """
        async with self._write_gate.slot(priority):
            return await operation()

    async def acquire_write_permit(self, provider: Provider = Provider.WORKSPACE) -> Permit:
        """Rate slot for the write currently holding the gate, ahead of every read tier."""
        return await self.acquire_read(provider, Priority.REALTIME)
