# src/hoursync/sync/poller.py

from __future__ import annotations

"""
Poll loops.

Three independent lanes share one scheduler and one set of caches:
- realtime: entries updated since the previous tick, every few seconds
- bulk: everything updated within a multi-month window, roughly hourly
- background: re-update registry nodes whose periodic refresh is due

Each lane catches and logs its own failures; to stop a lane, cancel its task.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from ..core.ports import TimeTrackingSource
from ..providers.models import TimeEntry
from ..scheduling import Priority
from .engine import AggregationEngine, UpdateOutcome
from .matching import NameMatcher
from .watchdog import Watchdog

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class SyncStats:
    entries: int = 0
    written: int = 0
    unchanged: int = 0
    abandoned: int = 0
    skipped: int = 0
    unmatched: int = 0
    failed: int = 0

    def record(self, outcome: UpdateOutcome | None) -> None:
        if outcome is None:
            self.unmatched += 1
        elif outcome is UpdateOutcome.WRITTEN:
            self.written += 1
        elif outcome is UpdateOutcome.UNCHANGED:
            self.unchanged += 1
        elif outcome is UpdateOutcome.ABANDONED:
            self.abandoned += 1
        else:
            self.skipped += 1


class Poller:
    def __init__(
        self,
        source: TimeTrackingSource,
        engine: AggregationEngine,
        matcher: NameMatcher,
        *,
        watchdog: Watchdog | None = None,
        ignored_clients: Iterable[str] = (),
        realtime_interval_seconds: float = 5.0,
        realtime_lookback_hours: float = 24.0,
        bulk_interval_seconds: float = 3600.0,
        bulk_initial_delay_seconds: float = 60.0,
        bulk_window_days: int = 90,
        refresh_check_seconds: float = 60.0,
        now: Callable[[], datetime] = _utcnow,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.source = source
        self.engine = engine
        self.matcher = matcher
        self.watchdog = watchdog
        self.ignored_clients = {c.strip().lower() for c in ignored_clients if c.strip()}
        self.realtime_interval_seconds = max(0.5, float(realtime_interval_seconds))
        self.realtime_lookback = timedelta(hours=float(realtime_lookback_hours))
        self.bulk_interval_seconds = float(bulk_interval_seconds)
        self.bulk_initial_delay_seconds = float(bulk_initial_delay_seconds)
        self.bulk_window = timedelta(days=int(bulk_window_days))
        self.refresh_check_seconds = float(refresh_check_seconds)

        self.first_run_complete = False
        self._last_check: datetime | None = None
        self._now = now
        self._clock = clock
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings,
        source: TimeTrackingSource,
        engine: AggregationEngine,
        matcher: NameMatcher,
        *,
        watchdog: Watchdog | None = None,
    ) -> "Poller":
        return cls(
            source,
            engine,
            matcher,
            watchdog=watchdog,
            ignored_clients=settings.ignored_clients,
            realtime_interval_seconds=settings.realtime_interval_seconds,
            realtime_lookback_hours=settings.realtime_lookback_hours,
            bulk_interval_seconds=settings.bulk_interval_seconds,
            bulk_window_days=settings.bulk_window_days,
        )

    # ---- entry handling ----

    def relevant_entries(self, entries: Iterable[TimeEntry]) -> list[TimeEntry]:
        """Drop ignored clients and collapse entries that point at the same task."""
        seen: set[tuple[str, str]] = set()
        out: list[TimeEntry] = []
        for entry in entries:
            if entry.client.name.strip().lower() in self.ignored_clients:
                continue
            key = self.matcher.task_key(entry.client.name, entry.notes)
            if not key[1] or key in seen:
                continue
            seen.add(key)
            out.append(entry)
        return out

    async def _sync_one(self, entry: TimeEntry, priority: Priority) -> UpdateOutcome | None:
        node = await self.engine.node_for_entry(entry.notes, entry.client.name, priority)
        if node is None:
            return None
        return await self.engine.update(node, priority)

    async def sync_entries(self, entries: list[TimeEntry], priority: Priority) -> SyncStats:
        stats = SyncStats(entries=len(entries))
        results = await asyncio.gather(
            *(self._sync_one(e, priority) for e in entries),
            return_exceptions=True,
        )
        for entry, result in zip(entries, results):
            if isinstance(result, BaseException):
                stats.failed += 1
                logger.error(
                    'Failed to sync [%s] - "%s"',
                    entry.client.name,
                    entry.notes.splitlines()[0] if entry.notes else "",
                    exc_info=result,
                )
            else:
                stats.record(result)
        return stats

    # ---- realtime lane ----

    async def realtime_tick(self) -> SyncStats:
        tick_start = self._now()
        since = self._last_check or (tick_start - self.realtime_lookback)

        entries = await self.source.list_time_entries(updated_since=since, priority=Priority.REALTIME)
        # Overlap one interval so entries edited mid-request are not missed.
        self._last_check = tick_start - timedelta(seconds=self.realtime_interval_seconds)

        relevant = self.relevant_entries(entries)
        if relevant:
            logger.info("[UPDATE] found %d entries", len(relevant))
        return await self.sync_entries(relevant, Priority.REALTIME)

    async def run_realtime(self) -> None:
        while True:
            started = self._clock()
            try:
                await self.realtime_tick()
            except Exception:
                logger.exception("Realtime poll failed")
            else:
                if self.watchdog is not None:
                    self.watchdog.beat()
                if not self.first_run_complete:
                    self.first_run_complete = True
                    self.engine.annotate_writes = True
                    logger.info("First run complete!")

            await self._sleep(max(0.0, self.realtime_interval_seconds - (self._clock() - started)))

    # ---- bulk lane ----

    async def bulk_tick(self) -> SyncStats:
        since = self._now() - self.bulk_window
        entries = await self.source.list_time_entries(updated_since=since, priority=Priority.BULK)
        relevant = self.relevant_entries(entries)
        logger.info("[BULK] reconciling %d tasks updated since %s", len(relevant), since.date().isoformat())
        stats = await self.sync_entries(relevant, Priority.BULK)
        logger.info(
            "[BULK] done: %d written, %d unchanged, %d unmatched, %d failed",
            stats.written,
            stats.unchanged,
            stats.unmatched,
            stats.failed,
        )
        return stats

    async def run_bulk(self) -> None:
        await self._sleep(self.bulk_initial_delay_seconds)
        while True:
            try:
                await self.bulk_tick()
            except Exception:
                logger.exception("Bulk reconciliation failed")
            await self._sleep(self.bulk_interval_seconds)

    # ---- background lane ----

    async def refresh_tick(self) -> SyncStats:
        due = self.engine.due_for_refresh()
        stats = SyncStats(entries=len(due))
        for node in due:
            try:
                stats.record(await self.engine.update(node, Priority.BACKGROUND))
            except Exception:
                stats.failed += 1
                logger.exception("Background refresh of %s (%r) failed", node.record_id, node.task_name)
        if due:
            logger.debug("[REFRESH] %d nodes refreshed (%d written)", len(due), stats.written)
        return stats

    async def run_refresh(self) -> None:
        while True:
            await self._sleep(self.refresh_check_seconds)
            try:
                await self.refresh_tick()
            except Exception:
                logger.exception("Background refresh failed")
