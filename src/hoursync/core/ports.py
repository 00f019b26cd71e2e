# src/hoursync/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The sync engine depends on Protocols instead of the concrete HTTP clients.
This keeps providers swappable and lets tests run against in-memory fakes.
"""

from datetime import datetime
from typing import Any, Awaitable, Protocol

from ..providers.models import TimeEntry, TrackedClient
from ..scheduling import Priority


class TimeTrackingSource(Protocol):
    """Read-only view of the time-tracking provider (HarvestAPI)."""

    def list_time_entries(
        self,
        *,
        updated_since: datetime | None = None,
        is_running: bool | None = None,
        client_id: int | None = None,
        priority: Priority = Priority.BULK,
    ) -> Awaitable[list[TimeEntry]]: ...

    def list_clients(self, *, priority: Priority = Priority.BULK) -> Awaitable[list[TrackedClient]]: ...


class WorkspaceSource(Protocol):
    """Read/write view of the workspace provider (NotionAPI). Returns raw JSON."""

    def retrieve_page(self, page_id: str, *, priority: Priority = Priority.BULK) -> Awaitable[dict[str, Any]]: ...

    def query_database(
        self,
        database_id: str,
        filter: dict[str, Any] | None = None,
        *,
        priority: Priority = Priority.BULK,
    ) -> Awaitable[list[dict[str, Any]]]: ...

    def update_page(
        self,
        page_id: str,
        properties: dict[str, Any],
        *,
        priority: Priority = Priority.BULK,
    ) -> Awaitable[dict[str, Any]]: ...


class OutboundMessenger(Protocol):
    """
    Where human-facing alerts go.

    The connector decides how to deliver (Matrix room, log line, ...).
    """

    def send_text(self, *, text: str) -> Awaitable[None]: ...
