# src/hoursync/sync/hours.py

from __future__ import annotations

import logging

from ..cache import CacheSet, ClientsKey, HoursKey
from ..core.ports import TimeTrackingSource
from ..providers.models import TrackedClient
from ..scheduling import Priority
from .matching import NameMatcher

logger = logging.getLogger(__name__)


class HoursLookup:
    """
    Locally-measured hours of one task: the sum of every time entry whose client
    matches the task's project and whose note matches the task name.

    Results are memoized for a few seconds (hours change more often than task
    metadata), keyed by the normalized names so equivalent spellings share a lookup.
    """

    def __init__(self, source: TimeTrackingSource, caches: CacheSet, matcher: NameMatcher) -> None:
        self._source = source
        self._caches = caches
        self._matcher = matcher

    async def hours_for(self, task_name: str, client_name: str, priority: Priority) -> float:
        norm_client, norm_task = self._matcher.task_key(client_name, task_name)
        if not norm_task:
            return 0.0
        return await self._caches.hours.get_or_load(
            HoursKey(task_name=norm_task, client_name=norm_client),
            lambda: self._compute(task_name, client_name, priority),
        )

    async def clients(self, priority: Priority) -> list[TrackedClient]:
        return await self._caches.clients.get_or_load(
            ClientsKey(),
            lambda: self._source.list_clients(priority=priority),
        )

    async def _compute(self, task_name: str, client_name: str, priority: Priority) -> float:
        matching = [c for c in await self.clients(priority) if self._matcher.clients_match(c.name, client_name)]
        if not matching:
            logger.debug("No time-tracking client matches %r", client_name)
            return 0.0

        total = 0.0
        for client in matching:
            entries = await self._source.list_time_entries(client_id=client.id, priority=priority)
            total += sum(e.hours for e in entries if self._matcher.tasks_match(e.notes, task_name))
        return round(total, 2)
