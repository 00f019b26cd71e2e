# src/hoursync/sync/workspace.py

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from ..cache import CacheSet, PageKey, QueryKey
from ..core.ports import WorkspaceSource
from ..providers.models import (
    Parsed,
    ParseResult,
    ProjectRecord,
    TaskRecord,
    WorkspaceSchema,
    parse_project_record,
    parse_task_record,
)
from ..providers.notion import error_marker_properties, time_spent_properties
from ..scheduling import Priority

logger = logging.getLogger(__name__)


class WorkspaceGateway:
    """
    Typed, cached access to the workspace.

    - reads go through the page/query caches (shared in-flight lookups)
    - a successful write replaces the cached page with the provider's response,
      so the next read in the same tick sees the value we just wrote
    """

    def __init__(
        self,
        source: WorkspaceSource,
        caches: CacheSet,
        schema: WorkspaceSchema,
        *,
        client_database_id: str,
        task_database_id: str,
        time_spent_template: str = "{hours} Hours Spent\t",
        ambiguity_marker: str = "Time Error: Multiple notion cards found.",
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._source = source
        self._caches = caches
        self.schema = schema
        self.client_database_id = client_database_id
        self.task_database_id = task_database_id
        self.time_spent_template = time_spent_template
        self.ambiguity_marker = ambiguity_marker
        self._now = now

    @classmethod
    def from_settings(cls, settings, source: WorkspaceSource, caches: CacheSet) -> "WorkspaceGateway":
        return cls(
            source,
            caches,
            WorkspaceSchema.from_settings(settings),
            client_database_id=settings.client_database_id,
            task_database_id=settings.task_database_id,
            time_spent_template=settings.time_spent_template,
            ambiguity_marker=settings.ambiguity_marker,
        )

    # ---- reads ----

    async def _page(self, page_id: str, priority: Priority) -> dict:
        return await self._caches.pages.get_or_load(
            PageKey(page_id),
            lambda: self._source.retrieve_page(page_id, priority=priority),
        )

    async def fetch_task(self, page_id: str, priority: Priority) -> ParseResult[TaskRecord]:
        return parse_task_record(await self._page(page_id, priority), self.schema)

    async def fetch_project(self, page_id: str, priority: Priority) -> ParseResult[ProjectRecord]:
        return parse_project_record(await self._page(page_id, priority), self.schema)

    async def list_projects(self, priority: Priority) -> list[ProjectRecord]:
        key = QueryKey(self.client_database_id)
        raw = await self._caches.queries.get_or_load(
            key,
            lambda: self._source.query_database(self.client_database_id, None, priority=priority),
        )
        return _parsed_only(parse_project_record(page, self.schema) for page in raw)

    async def list_tasks_for_projects(self, project_ids: Iterable[str], priority: Priority) -> list[TaskRecord]:
        ids = tuple(sorted(set(project_ids)))
        if not ids:
            return []
        key = QueryKey(self.task_database_id, ids)
        query_filter = {"or": [{"property": self.schema.project, "relation": {"contains": pid}} for pid in ids]}
        raw = await self._caches.queries.get_or_load(
            key,
            lambda: self._source.query_database(self.task_database_id, query_filter, priority=priority),
        )
        return _parsed_only(parse_task_record(page, self.schema) for page in raw)

    # ---- writes ----

    async def write_hours(self, page_id: str, hours: float, priority: Priority, *, annotate: bool) -> None:
        properties = time_spent_properties(
            self.schema,
            hours,
            template=self.time_spent_template,
            written_at=self._now() if annotate else None,
        )
        page = await self._source.update_page(page_id, properties, priority=priority)
        self._refresh(page_id, page)

    async def mark_ambiguous(self, page_id: str, priority: Priority) -> None:
        page = await self._source.update_page(
            page_id,
            error_marker_properties(self.schema, self.ambiguity_marker),
            priority=priority,
        )
        self._refresh(page_id, page)

    def _refresh(self, page_id: str, page: dict) -> None:
        if isinstance(page, dict) and page.get("id") == page_id:
            self._caches.pages.set(PageKey(page_id), page)
        else:
            # Provider did not echo the page; force the next read to go remote.
            self._caches.pages.invalidate(PageKey(page_id))


def _parsed_only(results: Iterable[ParseResult]) -> list:
    out = []
    for result in results:
        if isinstance(result, Parsed):
            out.append(result.value)
        else:
            logger.debug("Skipping workspace record: %s", result.reason)
    return out
