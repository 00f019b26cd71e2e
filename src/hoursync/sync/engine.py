# src/hoursync/sync/engine.py

from __future__ import annotations

"""
Hierarchical aggregation engine.

A TaskNode mirrors one workspace task record. Its aggregated hours are its own
measured hours plus the measured hours of every distinct descendant reachable
through sub-task links. update(node) recomputes that total, propagates the
change to every parent, and writes only when the total differs from what the
record currently shows.

Malformed graphs are expected:
- a record may list itself as parent/child (ignored)
- parent/child links may form cycles: each update chain carries the set of
  nodes it already visited, so upward recursion always terminates, and the
  descendant sum visits each node once, so totals never inflate
- a node asked to update while another chain is updating it is not waited on;
  it is flagged and re-run once when the current update finishes
"""

import asyncio
import logging
import random
import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from enum import StrEnum

from ..core.alerts import AlertNotifier
from ..errors import ProviderError, RecordNotFound
from ..providers.models import Parsed, ProjectRecord, SchemaMismatch, TaskRecord
from ..scheduling import Priority
from .hours import HoursLookup
from .matching import NameMatcher
from .workspace import WorkspaceGateway

logger = logging.getLogger(__name__)

# First background refresh of a discovered node lands between 10 and 70 minutes later.
_FIRST_REFRESH_MIN_SECONDS = 10 * 60.0
_FIRST_REFRESH_SPREAD_SECONDS = 60 * 60.0


class NodeState(StrEnum):
    FETCHING = "fetching"
    RESOLVED = "resolved"
    WRITING = "writing"


class UpdateOutcome(StrEnum):
    WRITTEN = "written"
    UNCHANGED = "unchanged"
    # Record vanished or no longer parses; retried on the next pass.
    ABANDONED = "abandoned"
    # Re-entrant call (cycle, or another chain is mid-update).
    SKIPPED = "skipped"


@dataclass(slots=True, eq=False)
class TaskNode:
    record_id: str
    task_name: str
    project_name: str
    local_hours: float = 0.0
    child_hours: float = 0.0
    parent_ids: set[str] = field(default_factory=set)
    child_ids: set[str] = field(default_factory=set)
    state: NodeState = NodeState.RESOLVED
    next_refresh_at: float = 0.0
    rerun_requested: bool = False

    @property
    def aggregated_hours(self) -> float:
        return round(self.local_hours + self.child_hours, 2)

    @property
    def busy(self) -> bool:
        return self.state is not NodeState.RESOLVED

    def absorb(self, record: TaskRecord) -> None:
        """Take relation links (and the current title) from a freshly fetched record."""
        if record.task_name:
            self.task_name = record.task_name
        if self.record_id in record.parent_ids or self.record_id in record.child_ids:
            logger.warning("Task %s (%r) references itself; ignoring the self link", self.record_id, self.task_name)
        self.parent_ids = {pid for pid in record.parent_ids if pid != self.record_id}
        self.child_ids = {cid for cid in record.child_ids if cid != self.record_id}


class TaskRegistry:
    """At most one TaskNode per workspace record id, for the lifetime of the engine."""

    def __init__(self) -> None:
        self._nodes: dict[str, TaskNode] = {}

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._nodes

    def __iter__(self) -> Iterator[TaskNode]:
        return iter(list(self._nodes.values()))

    def get(self, record_id: str) -> TaskNode | None:
        return self._nodes.get(record_id)

    def add(self, node: TaskNode) -> TaskNode:
        """Register `node` unless the id is already known; always returns the registered instance."""
        return self._nodes.setdefault(node.record_id, node)

    def find_by_name(self, task_name: str, project_name: str, matcher: NameMatcher) -> TaskNode | None:
        for node in self._nodes.values():
            if matcher.tasks_match(node.task_name, task_name) and matcher.clients_match(node.project_name, project_name):
                return node
        return None

    def descendant_hours(self, node: TaskNode) -> float:
        """Sum of local hours over distinct known descendants (cycle-safe, self excluded)."""
        seen = {node.record_id}
        stack = list(node.child_ids)
        total = 0.0
        while stack:
            rid = stack.pop()
            if rid in seen:
                continue
            seen.add(rid)
            child = self._nodes.get(rid)
            if child is None:
                continue
            total += child.local_hours
            stack.extend(child.child_ids)
        return round(total, 2)


class AggregationEngine:
    MAX_RERUNS = 1

    def __init__(
        self,
        workspace: WorkspaceGateway,
        hours: HoursLookup,
        alerts: AlertNotifier,
        matcher: NameMatcher,
        *,
        registry: TaskRegistry | None = None,
        refresh_interval_seconds: float = 3600.0,
        on_write: Callable[[], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self.workspace = workspace
        self.hours = hours
        self.alerts = alerts
        self.matcher = matcher
        self.registry = registry if registry is not None else TaskRegistry()
        self.refresh_interval_seconds = float(refresh_interval_seconds)
        # Set by the poller once the catch-up pass is done; later writes carry a timestamp.
        self.annotate_writes = False

        self._on_write = on_write
        self._clock = clock
        self._rng = rng or random.Random()
        self._creating: dict[str, asyncio.Future[TaskNode | None]] = {}

    # ------------------------------------------------------------------
    # Node lookup / creation
    # ------------------------------------------------------------------

    async def node_for_entry(self, task_name: str, project_name: str, priority: Priority) -> TaskNode | None:
        """
        Resolve a time entry (client name + note) to exactly one task node.

        Soft-fails (alert + None): no matching project, no matching task,
        several matching tasks (each of them gets a visible error marker).
        """
        cached = self.registry.find_by_name(task_name, project_name, self.matcher)
        if cached is not None:
            return cached

        projects = [p for p in await self.workspace.list_projects(priority) if self.matcher.clients_match(p.name, project_name)]
        if not projects:
            await self.alerts.notify(f'no project found for "{project_name}"')
            return None

        records = [
            r
            for r in await self.workspace.list_tasks_for_projects((p.id for p in projects), priority)
            if self.matcher.tasks_match(r.task_name, task_name)
        ]

        if len(records) > 1:
            await self.alerts.notify(f'multiple tasks found for "{task_name}" in {project_name}')
            await asyncio.gather(*(self._mark_ambiguous(r.id, priority) for r in records))
            return None

        if not records:
            await self.alerts.notify(f'no task found for "{task_name}" in {project_name}')
            return None

        record = records[0]
        existing = self.registry.get(record.id)
        if existing is not None:
            return existing

        project = next((p for p in projects if p.id == record.project_id), None)
        if project is None:
            await self.alerts.notify(
                f'found a task for "{task_name}" in {project_name}, but its project did not resolve'
            )
            return None

        return self.registry.add(self._new_node(record, project))

    async def node_for_id(self, record_id: str, priority: Priority) -> TaskNode | None:
        """
        Registry lookup by id, creating (and hydrating) the node on a miss.

        Concurrent misses for the same id share one creation. Returns None when
        the record is gone or does not look like a task.
        """
        node = self.registry.get(record_id)
        if node is not None:
            return node

        pending = self._creating.get(record_id)
        if pending is None:
            pending = asyncio.ensure_future(self._create_by_id(record_id, priority))
            self._creating[record_id] = pending
            pending.add_done_callback(lambda _f, rid=record_id: self._creating.pop(rid, None))
        return await asyncio.shield(pending)

    async def _create_by_id(self, record_id: str, priority: Priority) -> TaskNode | None:
        try:
            parsed = await self.workspace.fetch_task(record_id, priority)
        except RecordNotFound:
            logger.info("Task %s not found; skipping it for this pass", record_id)
            return None
        if isinstance(parsed, SchemaMismatch):
            logger.debug("Task %s does not parse: %s", record_id, parsed.reason)
            return None
        record = parsed.value

        if record.project_id is None:
            logger.debug("Task %s (%r) has no project; skipping", record_id, record.task_name)
            return None

        try:
            project_parsed = await self.workspace.fetch_project(record.project_id, priority)
        except RecordNotFound:
            logger.info("Project %s of task %s not found", record.project_id, record_id)
            return None
        if not isinstance(project_parsed, Parsed):
            logger.debug("Project %s does not parse: %s", record.project_id, project_parsed.reason)
            return None

        node = self._new_node(record, project_parsed.value)
        node.local_hours = await self.hours.hours_for(node.task_name, node.project_name, priority)

        # Register before hydrating so cyclic links find this instance instead of waiting on it.
        node = self.registry.add(node)
        await self._resolve(node.child_ids, priority)
        node.child_hours = self.registry.descendant_hours(node)
        return node

    def _new_node(self, record: TaskRecord, project: ProjectRecord) -> TaskNode:
        node = TaskNode(
            record_id=record.id,
            task_name=record.task_name,
            project_name=project.name,
            next_refresh_at=self._clock() + _FIRST_REFRESH_MIN_SECONDS + self._rng.random() * _FIRST_REFRESH_SPREAD_SECONDS,
        )
        node.absorb(record)
        return node

    async def _resolve(self, record_ids: Iterable[str], priority: Priority) -> list[TaskNode]:
        ids = sorted(set(record_ids))
        nodes = await asyncio.gather(*(self.node_for_id(rid, priority) for rid in ids))
        return [n for n in nodes if n is not None]

    async def _mark_ambiguous(self, record_id: str, priority: Priority) -> None:
        try:
            await self.workspace.mark_ambiguous(record_id, priority)
        except ProviderError:
            logger.warning("Failed to mark task %s as ambiguous", record_id, exc_info=True)

    # ------------------------------------------------------------------
    # Update / propagation
    # ------------------------------------------------------------------

    async def update(
        self,
        node: TaskNode,
        priority: Priority = Priority.REALTIME,
        *,
        _path: frozenset[str] = frozenset(),
    ) -> UpdateOutcome:
        if node.record_id in _path:
            logger.debug("Cycle through task %s (%r); not revisiting", node.record_id, node.task_name)
            return UpdateOutcome.SKIPPED

        if node.busy:
            node.rerun_requested = True
            return UpdateOutcome.SKIPPED

        path = _path | {node.record_id}
        outcome = await self._update_once(node, priority, path)

        reruns = 0
        while node.rerun_requested and reruns < self.MAX_RERUNS:
            node.rerun_requested = False
            reruns += 1
            outcome = await self._update_once(node, priority, path)
        node.rerun_requested = False
        return outcome

    async def _update_once(self, node: TaskNode, priority: Priority, path: frozenset[str]) -> UpdateOutcome:
        node.state = NodeState.FETCHING
        try:
            try:
                parsed = await self.workspace.fetch_task(node.record_id, priority)
            except RecordNotFound:
                logger.info("Task %s (%r) not found; dropping it for this pass", node.record_id, node.task_name)
                return UpdateOutcome.ABANDONED
            if isinstance(parsed, SchemaMismatch):
                logger.debug("Task %s no longer parses (%s); abandoning update", node.record_id, parsed.reason)
                return UpdateOutcome.ABANDONED
            record = parsed.value
            node.absorb(record)

            node.local_hours = await self.hours.hours_for(node.task_name, node.project_name, priority)
            await self._resolve(node.child_ids, priority)
            node.child_hours = self.registry.descendant_hours(node)
            node.state = NodeState.RESOLVED

            await self._propagate(node, priority, path)

            new_total = node.aggregated_hours
            previous = record.previous_hours
            verbose = logging.INFO if priority is Priority.REALTIME else logging.DEBUG

            if previous is not None and round(previous, 2) == new_total:
                logger.log(
                    verbose,
                    '[SKIP] hours for [%s] - "%s" did not change (%s)',
                    node.project_name,
                    node.task_name,
                    new_total,
                )
                return UpdateOutcome.UNCHANGED

            node.state = NodeState.WRITING
            await self.workspace.write_hours(node.record_id, new_total, priority, annotate=self.annotate_writes)
            if self._on_write is not None:
                self._on_write()
            logger.log(
                verbose,
                '[WRITE] updated hours for [%s] - "%s" to %s (%s + %s)',
                node.project_name,
                node.task_name,
                new_total,
                node.local_hours,
                node.child_hours,
            )
            return UpdateOutcome.WRITTEN
        finally:
            node.state = NodeState.RESOLVED
            node.next_refresh_at = self._clock() + self.refresh_interval_seconds

    async def _propagate(self, node: TaskNode, priority: Priority, path: frozenset[str]) -> None:
        parents = await self._resolve(node.parent_ids - path, priority)
        results = await asyncio.gather(
            *(self.update(parent, priority, _path=path) for parent in parents),
            return_exceptions=True,
        )
        for parent, result in zip(parents, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Updating parent %s (%r) of %s failed",
                    parent.record_id,
                    parent.task_name,
                    node.record_id,
                    exc_info=result,
                )

    def due_for_refresh(self) -> list[TaskNode]:
        now = self._clock()
        return [n for n in self.registry if not n.busy and n.next_refresh_at <= now]
