# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from hoursync.config import DEFAULT_CLIENT_ALIASES

from .fakes import CLIENT_DB, TASK_DB, FakeClock, FakeTimeTracking, FakeWorkspace


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the from_settings constructors.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the environment.
    """
    return SimpleNamespace(
        app_name="hoursync-test",
        log_level="DEBUG",
        data_dir=tmp_path / "data",
        # Providers
        harvest_token="harvest-token",
        harvest_account_id="12345",
        harvest_base_url="https://harvest.test/v2",
        harvest_user_agent="hoursync-test",
        harvest_rate=100,
        harvest_interval_seconds=15.0,
        notion_tokens=["secret-a", "secret-b"],
        notion_base_url="https://notion.test/v1",
        notion_version="2022-06-28",
        notion_rate=3,
        notion_interval_seconds=1.0,
        client_database_id=CLIENT_DB,
        task_database_id=TASK_DB,
        # Schema
        task_name_property="Task name",
        parent_property="Parent task",
        subtasks_property="Sub-tasks",
        project_property="Project",
        time_spent_property="Time Spent",
        project_name_property="Project Name",
        time_spent_template="{hours} Hours Spent\t",
        ambiguity_marker="Time Error: Multiple notion cards found.",
        # Matching
        ignored_clients=["Underbelly"],
        client_aliases=dict(DEFAULT_CLIENT_ALIASES),
        # Remote calls / caches
        request_timeout_seconds=5.0,
        retry_max_attempts=3,
        retry_base_delay_seconds=0.0,
        page_cache_ttl_seconds=60.0,
        query_cache_ttl_seconds=60.0,
        hours_cache_ttl_seconds=5.0,
        # Loops
        realtime_interval_seconds=5.0,
        realtime_lookback_hours=24.0,
        bulk_interval_seconds=3600.0,
        bulk_window_days=90,
        refresh_interval_seconds=3600.0,
        watchdog_timeout_seconds=180.0,
        watchdog_check_seconds=30.0,
        # Alerts
        alert_cooldown_seconds=21600.0,
        alert_timeout_seconds=10.0,
        matrix_homeserver="",
        matrix_user_id="",
        matrix_password="",
        alert_room_id="",
        matrix_store_path=tmp_path / "matrix_store",
        matrix_enabled=False,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def workspace() -> FakeWorkspace:
    """Project "Acme" with an empty task database."""
    ws = FakeWorkspace()
    ws.add_project("p-acme", "Acme")
    return ws


@pytest.fixture()
def tracking() -> FakeTimeTracking:
    return FakeTimeTracking({1: "Acme Corp", 2: "Underbelly"})
