# tests/test_engine.py

from __future__ import annotations

import asyncio

import pytest

from hoursync.scheduling import Priority
from hoursync.sync.engine import TaskNode, TaskRegistry, UpdateOutcome
from hoursync.sync.matching import NameMatcher

from .fakes import FakeTimeTracking, FakeWorkspace, build_engine


def _tree(workspace: FakeWorkspace, tracking: FakeTimeTracking) -> None:
    """
    Root
     └─ Mid (1h)
         ├─ Leaf (2h)
         └─ Sibling (3h)
    """
    workspace.add_task("root", "Root", children=["mid"])
    workspace.add_task("mid", "Mid", parents=["root"], children=["leaf", "sib"])
    workspace.add_task("leaf", "Leaf", parents=["mid"])
    workspace.add_task("sib", "Sibling", parents=["mid"])
    tracking.add_entry(1, "Mid", 1.0)
    tracking.add_entry(1, "Leaf", 1.5)
    tracking.add_entry(1, "[dev] leaf", 0.5)
    tracking.add_entry(1, "Sibling", 3.0)


@pytest.mark.asyncio
async def test_update_converges_up_the_ancestry(workspace, tracking) -> None:
    _tree(workspace, tracking)
    h = build_engine(workspace, tracking)

    leaf = await h.engine.node_for_entry("Leaf", "Acme Corp", Priority.REALTIME)
    assert leaf is not None
    outcome = await h.engine.update(leaf, Priority.REALTIME)

    assert outcome is UpdateOutcome.WRITTEN
    assert workspace.time_spent_text("leaf") == "2 Hours Spent\t"
    assert workspace.time_spent_text("mid") == "6 Hours Spent\t"
    assert workspace.time_spent_text("root") == "6 Hours Spent\t"
    # One pass, one write per ancestor level; the sibling is only read.
    assert sorted(workspace.written_ids()) == ["leaf", "mid", "root"]
    assert workspace.time_spent_text("sib") == ""
    assert len(h.beats) == 3


@pytest.mark.asyncio
async def test_second_pass_without_changes_writes_nothing(workspace, tracking) -> None:
    _tree(workspace, tracking)
    h = build_engine(workspace, tracking)

    leaf = await h.engine.node_for_entry("Leaf", "Acme Corp", Priority.REALTIME)
    await h.engine.update(leaf)
    writes = len(workspace.writes)

    # Straight away (caches hold the write responses) and after every cache expired.
    assert await h.engine.update(leaf) is UpdateOutcome.UNCHANGED
    h.clock.advance(120)
    assert await h.engine.update(leaf) is UpdateOutcome.UNCHANGED
    assert len(workspace.writes) == writes


@pytest.mark.asyncio
async def test_new_hours_reach_every_ancestor(workspace, tracking) -> None:
    _tree(workspace, tracking)
    h = build_engine(workspace, tracking)
    leaf = await h.engine.node_for_entry("Leaf", "Acme Corp", Priority.REALTIME)
    await h.engine.update(leaf)

    tracking.add_entry(1, "Leaf", 0.25)
    h.clock.advance(10)  # hours cache expiry
    await h.engine.update(leaf)

    assert workspace.time_spent_text("leaf") == "2.25 Hours Spent\t"
    assert workspace.time_spent_text("mid") == "6.25 Hours Spent\t"
    assert workspace.time_spent_text("root") == "6.25 Hours Spent\t"


@pytest.mark.asyncio
async def test_annotated_writes_carry_a_timestamp(workspace, tracking) -> None:
    workspace.add_task("t1", "Solo")
    tracking.add_entry(1, "Solo", 4.0)
    h = build_engine(workspace, tracking)
    h.engine.annotate_writes = True

    node = await h.engine.node_for_entry("Solo", "Acme", Priority.REALTIME)
    await h.engine.update(node)

    assert workspace.time_spent_text("t1") == "4 Hours Spent\t^{2:21pm}"


@pytest.mark.asyncio
async def test_matching_total_is_not_rewritten(workspace, tracking) -> None:
    workspace.add_task("t1", "Solo", time_spent="4 Hours Spent\t^{9:00am}")
    tracking.add_entry(1, "Solo", 4.0)
    h = build_engine(workspace, tracking)

    node = await h.engine.node_for_entry("Solo", "Acme", Priority.REALTIME)
    assert await h.engine.update(node) is UpdateOutcome.UNCHANGED
    assert workspace.writes == []
    assert h.beats == []


@pytest.mark.asyncio
async def test_cycle_terminates_without_double_counting(workspace, tracking) -> None:
    workspace.add_task("a", "Alpha", parents=["b"], children=["b"])
    workspace.add_task("b", "Beta", parents=["a"], children=["a"])
    tracking.add_entry(1, "Alpha", 1.0)
    tracking.add_entry(1, "Beta", 2.0)
    h = build_engine(workspace, tracking)

    node = await h.engine.node_for_entry("Alpha", "Acme", Priority.REALTIME)
    outcome = await asyncio.wait_for(h.engine.update(node), timeout=2.0)

    assert outcome is UpdateOutcome.WRITTEN
    assert workspace.time_spent_text("a") == "3 Hours Spent\t"
    assert workspace.time_spent_text("b") == "3 Hours Spent\t"
    assert len(h.engine.registry) == 2


@pytest.mark.asyncio
async def test_self_reference_is_ignored(workspace, tracking) -> None:
    workspace.add_task("x", "Loop", parents=["x"], children=["x"])
    tracking.add_entry(1, "Loop", 1.5)
    h = build_engine(workspace, tracking)

    node = await h.engine.node_for_entry("Loop", "Acme", Priority.REALTIME)
    await asyncio.wait_for(h.engine.update(node), timeout=2.0)

    assert node.parent_ids == set()
    assert node.child_ids == set()
    assert workspace.time_spent_text("x") == "1.5 Hours Spent\t"


@pytest.mark.asyncio
async def test_diamond_counts_shared_descendant_once(workspace, tracking) -> None:
    workspace.add_task("top", "Top", children=["l", "r"])
    workspace.add_task("l", "Left", parents=["top"], children=["bottom"])
    workspace.add_task("r", "Right", parents=["top"], children=["bottom"])
    workspace.add_task("bottom", "Bottom", parents=["l", "r"])
    tracking.add_entry(1, "Bottom", 5.0)
    h = build_engine(workspace, tracking)

    node = await h.engine.node_for_entry("Bottom", "Acme", Priority.REALTIME)
    await h.engine.update(node)

    assert workspace.time_spent_text("top") == "5 Hours Spent\t"
    assert workspace.time_spent_text("l") == "5 Hours Spent\t"
    assert workspace.time_spent_text("r") == "5 Hours Spent\t"


@pytest.mark.asyncio
async def test_task_without_entries_has_zero_local_hours(workspace, tracking) -> None:
    workspace.add_task("t1", "Nobody logged this")
    h = build_engine(workspace, tracking)

    node = await h.engine.node_for_id("t1", Priority.BULK)
    assert node is not None
    assert node.local_hours == 0.0
    await h.engine.update(node, Priority.BULK)
    assert workspace.time_spent_text("t1") == "0 Hours Spent\t"


@pytest.mark.asyncio
async def test_ambiguous_entry_marks_every_candidate(workspace, tracking) -> None:
    workspace.add_task("d1", "Duplicate card")
    workspace.add_task("d2", "[old] duplicate card!")
    h = build_engine(workspace, tracking)

    node = await h.engine.node_for_entry("Duplicate card", "Acme", Priority.REALTIME)

    assert node is None
    marker = "Time Error: Multiple notion cards found."
    assert workspace.time_spent_text("d1") == marker
    assert workspace.time_spent_text("d2") == marker
    assert len(h.messenger.sent) == 1
    assert "multiple tasks" in h.messenger.sent[0]
    assert len(h.engine.registry) == 0


@pytest.mark.asyncio
async def test_unknown_project_and_task_alert_and_skip(workspace, tracking) -> None:
    h = build_engine(workspace, tracking)

    assert await h.engine.node_for_entry("Anything", "Globex", Priority.REALTIME) is None
    assert await h.engine.node_for_entry("Missing card", "Acme", Priority.REALTIME) is None
    # Same alert again inside the cooldown window is not re-sent.
    assert await h.engine.node_for_entry("Missing card", "Acme", Priority.REALTIME) is None

    assert h.messenger.sent == [
        'no project found for "Globex"',
        'no task found for "Missing card" in Acme',
    ]


@pytest.mark.asyncio
async def test_deleted_record_is_abandoned_for_this_pass(workspace, tracking) -> None:
    workspace.add_task("t1", "Solo")
    tracking.add_entry(1, "Solo", 1.0)
    h = build_engine(workspace, tracking)
    node = await h.engine.node_for_entry("Solo", "Acme", Priority.REALTIME)

    del workspace.pages["t1"]
    h.clock.advance(120)
    assert await h.engine.update(node) is UpdateOutcome.ABANDONED
    assert not node.busy

    workspace.add_task("t1", "Solo")
    h.clock.advance(120)
    assert await h.engine.update(node) is UpdateOutcome.WRITTEN


@pytest.mark.asyncio
async def test_missing_parent_does_not_block_the_child(workspace, tracking) -> None:
    workspace.add_task("child", "Child", parents=["ghost"])
    tracking.add_entry(1, "Child", 2.0)
    h = build_engine(workspace, tracking)

    node = await h.engine.node_for_entry("Child", "Acme", Priority.REALTIME)
    assert await h.engine.update(node) is UpdateOutcome.WRITTEN
    assert "ghost" not in h.engine.registry


@pytest.mark.asyncio
async def test_concurrent_lookups_create_one_node(workspace, tracking) -> None:
    workspace.add_task("t1", "Solo")
    h = build_engine(workspace, tracking)

    nodes = await asyncio.gather(*(h.engine.node_for_id("t1", Priority.BULK) for _ in range(5)))

    assert all(n is nodes[0] for n in nodes)
    assert workspace.retrieve_calls.count("t1") == 1
    assert len(h.engine.registry) == 1


@pytest.mark.asyncio
async def test_entry_lookup_reuses_registered_node(workspace, tracking) -> None:
    workspace.add_task("t1", "Solo")
    h = build_engine(workspace, tracking)

    first = await h.engine.node_for_entry("Solo", "Acme", Priority.REALTIME)
    queries = len(workspace.query_calls)
    second = await h.engine.node_for_entry("[x] solo", "ACME corp", Priority.REALTIME)

    assert first is second
    assert len(workspace.query_calls) == queries


@pytest.mark.asyncio
async def test_busy_node_is_rerun_once(workspace, tracking) -> None:
    workspace.add_task("t1", "Solo")
    tracking.add_entry(1, "Solo", 1.0)
    h = build_engine(workspace, tracking)
    node = await h.engine.node_for_entry("Solo", "Acme", Priority.REALTIME)

    first = asyncio.create_task(h.engine.update(node))
    await asyncio.sleep(0)
    assert node.busy
    assert await h.engine.update(node) is UpdateOutcome.SKIPPED
    assert node.rerun_requested

    assert await first in (UpdateOutcome.WRITTEN, UpdateOutcome.UNCHANGED)
    assert not node.rerun_requested
    assert not node.busy


@pytest.mark.asyncio
async def test_failed_parent_write_does_not_fail_the_child(workspace, tracking) -> None:
    workspace.add_task("p", "Parent", children=["c"])
    workspace.add_task("c", "Child", parents=["p"])
    tracking.add_entry(1, "Child", 1.0)
    workspace.fail_writes.add("p")
    h = build_engine(workspace, tracking)

    node = await h.engine.node_for_entry("Child", "Acme", Priority.REALTIME)
    assert await h.engine.update(node) is UpdateOutcome.WRITTEN
    assert workspace.time_spent_text("c") == "1 Hours Spent\t"


@pytest.mark.asyncio
async def test_due_for_refresh_follows_the_clock(workspace, tracking) -> None:
    workspace.add_task("t1", "Solo")
    h = build_engine(workspace, tracking)
    node = await h.engine.node_for_id("t1", Priority.BULK)

    assert h.engine.due_for_refresh() == []
    h.clock.advance(71 * 60)
    assert h.engine.due_for_refresh() == [node]

    await h.engine.update(node, Priority.BACKGROUND)
    assert h.engine.due_for_refresh() == []
    h.clock.advance(3600)
    assert h.engine.due_for_refresh() == [node]


def test_registry_descendant_sum_is_cycle_safe() -> None:
    registry = TaskRegistry()
    a = registry.add(TaskNode("a", "A", "Acme", local_hours=1.0, child_ids={"b", "c"}))
    registry.add(TaskNode("b", "B", "Acme", local_hours=2.0, child_ids={"c", "a"}))
    registry.add(TaskNode("c", "C", "Acme", local_hours=4.0, child_ids={"missing"}))

    assert registry.descendant_hours(a) == 6.0
    assert registry.add(TaskNode("a", "Other", "Acme")) is a
    assert registry.find_by_name("[x] b", "acme inc", NameMatcher()) is registry.get("b")
