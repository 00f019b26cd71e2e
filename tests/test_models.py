# tests/test_models.py

from __future__ import annotations

import pytest

from hoursync.providers.models import (
    Parsed,
    SchemaMismatch,
    TrackedClient,
    WorkspaceSchema,
    parse_project_record,
    parse_task_record,
    parse_time_entry,
    parse_tracked_client,
)
from hoursync.providers.notion import format_clock, format_hours, time_spent_properties

from .fakes import WRITTEN_AT, project_page, task_page


def test_time_entry_parses() -> None:
    raw = {
        "id": 7,
        "client": {"id": 1, "name": "Acme Corp"},
        "hours": 1.25,
        "notes": "Build login page",
        "updated_at": "2024-03-01T10:00:00Z",
        "is_running": True,
    }
    parsed = parse_time_entry(raw)
    assert isinstance(parsed, Parsed)
    entry = parsed.value
    assert entry.client.name == "Acme Corp"
    assert entry.hours == 1.25
    assert entry.is_running
    assert entry.updated_at is not None and entry.updated_at.tzinfo is not None


@pytest.mark.parametrize(
    "raw",
    [
        {"client": {"id": 1, "name": "Acme"}, "hours": "1.0", "notes": ""},
        {"client": {"id": 1, "name": "Acme"}, "hours": True, "notes": ""},
        {"client": None, "hours": 1.0, "notes": ""},
        {"client": {"id": 1, "name": "Acme"}, "hours": 1.0},
        "not an object",
    ],
)
def test_time_entry_mismatch(raw) -> None:
    assert isinstance(parse_time_entry(raw), SchemaMismatch)


def test_tracked_client() -> None:
    assert parse_tracked_client({"id": 3, "name": "Globex"}) == Parsed(TrackedClient(id=3, name="Globex"))
    assert isinstance(parse_tracked_client({"id": "3", "name": "Globex"}), SchemaMismatch)


def test_task_record_parses_relations_and_previous_hours() -> None:
    page = task_page(
        "t1",
        "Build login page",
        parents=["t0"],
        children=["t2", "t3"],
        time_spent="6.5 Hours Spent\t^{2:21pm}",
    )
    parsed = parse_task_record(page, WorkspaceSchema())
    assert isinstance(parsed, Parsed)
    record = parsed.value
    assert record.task_name == "Build login page"
    assert record.parent_ids == ("t0",)
    assert record.child_ids == ("t2", "t3")
    assert record.project_id == "p-acme"
    assert record.previous_hours == 6.5


@pytest.mark.parametrize("text", ["", "Time Error: Multiple notion cards found.", "nan Hours Spent"])
def test_previous_hours_unknown(text: str) -> None:
    parsed = parse_task_record(task_page("t1", "x", time_spent=text), WorkspaceSchema())
    assert isinstance(parsed, Parsed)
    assert parsed.value.previous_hours is None


def test_task_record_missing_property_is_a_mismatch() -> None:
    page = task_page("t1", "x")
    del page["properties"]["Sub-tasks"]
    result = parse_task_record(page, WorkspaceSchema())
    assert isinstance(result, SchemaMismatch)
    assert "Sub-tasks" in result.reason


def test_project_page_is_not_a_task() -> None:
    assert isinstance(parse_task_record(project_page("p1", "Acme"), WorkspaceSchema()), SchemaMismatch)
    parsed = parse_project_record(project_page("p1", "Acme"), WorkspaceSchema())
    assert isinstance(parsed, Parsed) and parsed.value.name == "Acme"


def test_custom_schema_names_are_honored() -> None:
    schema = WorkspaceSchema(time_spent="Hours")
    props = time_spent_properties(schema, 3)
    assert list(props) == ["Hours"]


@pytest.mark.parametrize(
    ("hours", "text"),
    [(6.0, "6"), (6.25, "6.25"), (6.5, "6.5"), (0.0, "0"), (1.004, "1"), (12.999, "13")],
)
def test_format_hours(hours: float, text: str) -> None:
    assert format_hours(hours) == text


def test_time_spent_payload_with_and_without_annotation() -> None:
    plain = time_spent_properties(WorkspaceSchema(), 6.25)
    assert plain == {"Time Spent": {"rich_text": [{"type": "text", "text": {"content": "6.25 Hours Spent\t"}}]}}

    annotated = time_spent_properties(WorkspaceSchema(), 6.25, written_at=WRITTEN_AT)
    items = annotated["Time Spent"]["rich_text"]
    assert items[1] == {"type": "equation", "equation": {"expression": "^{2:21pm}"}}
    assert format_clock(WRITTEN_AT.replace(hour=0, minute=5)) == "12:05am"
