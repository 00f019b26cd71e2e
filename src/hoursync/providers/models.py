# src/hoursync/providers/models.py

from __future__ import annotations

"""
Typed views of provider JSON.

Every parse_* function returns Parsed(value) or SchemaMismatch(reason); nothing
here raises on malformed input. Callers decide what a mismatch means
(drop the entry, abandon the update, ...).
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Parsed(Generic[T]):
    value: T


@dataclass(frozen=True, slots=True)
class SchemaMismatch:
    reason: str


ParseResult = Union[Parsed[T], SchemaMismatch]


class _Invalid(Exception):
    pass


def _require(obj: Any, key: str, kind: type | tuple[type, ...]) -> Any:
    if not isinstance(obj, dict):
        raise _Invalid(f"expected object containing {key!r}")
    if key not in obj:
        raise _Invalid(f"missing {key!r}")
    value = obj[key]
    # bool is an int subclass; never accept it where a number is expected.
    if isinstance(value, bool) and bool not in (kind if isinstance(kind, tuple) else (kind,)):
        raise _Invalid(f"{key!r} has wrong type bool")
    if not isinstance(value, kind):
        raise _Invalid(f"{key!r} has wrong type {type(value).__name__}")
    return value


# ---------------------------------------------------------------------------
# Time tracking
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TrackedClient:
    id: int
    name: str


@dataclass(frozen=True, slots=True)
class TimeEntry:
    id: int | None
    client: TrackedClient
    hours: float
    notes: str
    updated_at: datetime | None
    is_running: bool


def _parse_timestamp(raw: Any) -> datetime | None:
    if not isinstance(raw, str) or not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_tracked_client(raw: Any) -> ParseResult[TrackedClient]:
    try:
        return Parsed(TrackedClient(id=_require(raw, "id", int), name=_require(raw, "name", str)))
    except _Invalid as e:
        return SchemaMismatch(f"client: {e}")


def parse_time_entry(raw: Any) -> ParseResult[TimeEntry]:
    try:
        client_raw = _require(raw, "client", dict)
        client = TrackedClient(id=_require(client_raw, "id", int), name=_require(client_raw, "name", str))
        hours = float(_require(raw, "hours", (int, float)))
        notes = _require(raw, "notes", str)
    except _Invalid as e:
        return SchemaMismatch(f"time entry: {e}")

    entry_id = raw.get("id")
    return Parsed(
        TimeEntry(
            id=entry_id if isinstance(entry_id, int) and not isinstance(entry_id, bool) else None,
            client=client,
            hours=hours,
            notes=notes,
            updated_at=_parse_timestamp(raw.get("updated_at")),
            is_running=bool(raw.get("is_running", False)),
        )
    )


# ---------------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class WorkspaceSchema:
    """Property names of the target workspace. Supplied by configuration."""

    task_name: str = "Task name"
    parent: str = "Parent task"
    subtasks: str = "Sub-tasks"
    project: str = "Project"
    time_spent: str = "Time Spent"
    project_name: str = "Project Name"

    @classmethod
    def from_settings(cls, settings) -> "WorkspaceSchema":
        return cls(
            task_name=settings.task_name_property,
            parent=settings.parent_property,
            subtasks=settings.subtasks_property,
            project=settings.project_property,
            time_spent=settings.time_spent_property,
            project_name=settings.project_name_property,
        )


@dataclass(frozen=True, slots=True)
class TaskRecord:
    id: str
    task_name: str
    parent_ids: tuple[str, ...]
    child_ids: tuple[str, ...]
    project_ids: tuple[str, ...]
    time_spent_text: str

    @property
    def project_id(self) -> str | None:
        return self.project_ids[0] if self.project_ids else None

    @property
    def previous_hours(self) -> float | None:
        """The total we last wrote, read back from "<hours> Hours Spent ..."."""
        parts = self.time_spent_text.strip().split()
        if not parts:
            return None
        try:
            value = float(parts[0])
        except ValueError:
            return None
        return value if math.isfinite(value) else None


@dataclass(frozen=True, slots=True)
class ProjectRecord:
    id: str
    name: str


def _property(page: Any, name: str) -> dict[str, Any]:
    props = _require(page, "properties", dict)
    return _require(props, name, dict)


def _plain_text(prop: dict[str, Any], kind: str) -> str:
    items = _require(prop, kind, list)
    return "".join(_require(item, "plain_text", str) for item in items)


def _relation_ids(prop: dict[str, Any]) -> tuple[str, ...]:
    items = _require(prop, "relation", list)
    return tuple(_require(item, "id", str) for item in items)


def parse_task_record(page: Any, schema: WorkspaceSchema) -> ParseResult[TaskRecord]:
    try:
        return Parsed(
            TaskRecord(
                id=_require(page, "id", str),
                task_name=_plain_text(_property(page, schema.task_name), "title").strip(),
                parent_ids=_relation_ids(_property(page, schema.parent)),
                child_ids=_relation_ids(_property(page, schema.subtasks)),
                project_ids=_relation_ids(_property(page, schema.project)),
                time_spent_text=_plain_text(_property(page, schema.time_spent), "rich_text").strip(),
            )
        )
    except _Invalid as e:
        return SchemaMismatch(f"task record: {e}")


def parse_project_record(page: Any, schema: WorkspaceSchema) -> ParseResult[ProjectRecord]:
    try:
        return Parsed(
            ProjectRecord(
                id=_require(page, "id", str),
                name=_plain_text(_property(page, schema.project_name), "title").strip(),
            )
        )
    except _Invalid as e:
        return SchemaMismatch(f"project record: {e}")
