# src/hoursync/providers/notion.py

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

import httpx

from ..errors import ProviderError
from ..scheduling import Priority, Provider, RequestScheduler, RetryPolicy
from .http import send
from .models import WorkspaceSchema

logger = logging.getLogger(__name__)


def format_hours(hours: float) -> str:
    """6.0 -> "6", 6.25 -> "6.25", 1.005 -> "1" (two decimals, trailing zeros dropped)."""
    return f"{round(hours, 2):.2f}".rstrip("0").rstrip(".")


def format_clock(moment: datetime) -> str:
    """Local time as "2:21pm" (no leading zero)."""
    hour = moment.hour % 12 or 12
    suffix = "am" if moment.hour < 12 else "pm"
    return f"{hour}:{moment.minute:02d}{suffix}"


def time_spent_properties(
    schema: WorkspaceSchema,
    hours: float,
    *,
    template: str = "{hours} Hours Spent\t",
    written_at: datetime | None = None,
) -> dict[str, Any]:
    """Rich-text payload for the time-spent property, optionally annotated with the write time."""
    rich_text: list[dict[str, Any]] = [{"type": "text", "text": {"content": template.format(hours=format_hours(hours))}}]
    if written_at is not None:
        rich_text.append({"type": "equation", "equation": {"expression": f"^{{{format_clock(written_at)}}}"}})
    return {schema.time_spent: {"rich_text": rich_text}}


def error_marker_properties(schema: WorkspaceSchema, text: str) -> dict[str, Any]:
    return {schema.time_spent: {"rich_text": [{"type": "text", "text": {"content": text}}]}}


class NotionAPI:
    """
    Notion REST client.

    Reads rotate across the configured tokens (the scheduler's permit picks
    the token). Writes go through RequestScheduler.acquire_write so only one
    page update is ever in flight.
    """

    PROVIDER = "notion"

    def __init__(
        self,
        *,
        tokens: Sequence[str],
        scheduler: RequestScheduler,
        retry: RetryPolicy | None = None,
        base_url: str = "https://api.notion.com/v1",
        version: str = "2022-06-28",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        tokens = [t for t in tokens if t]
        if not tokens:
            raise ValueError("at least one Notion token is required")
        self._tokens = tokens
        self._scheduler = scheduler
        self._retry = retry or RetryPolicy()
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/",
            headers={
                "Notion-Version": version,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings,
        scheduler: RequestScheduler,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "NotionAPI":
        return cls(
            tokens=settings.notion_tokens,
            scheduler=scheduler,
            retry=RetryPolicy.from_settings(settings),
            base_url=settings.notion_base_url,
            version=settings.notion_version,
            timeout=settings.request_timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def retrieve_page(self, page_id: str, *, priority: Priority = Priority.BULK) -> dict[str, Any]:
        return await self._request("GET", f"pages/{page_id}", priority=priority)

    async def query_database(
        self,
        database_id: str,
        filter: dict[str, Any] | None = None,
        *,
        priority: Priority = Priority.BULK,
    ) -> list[dict[str, Any]]:
        """All result pages of a database query (follows next_cursor)."""
        results: list[dict[str, Any]] = []
        cursor: str | None = None
        while True:
            body: dict[str, Any] = {"page_size": 100}
            if filter:
                body["filter"] = filter
            if cursor:
                body["start_cursor"] = cursor

            data = await self._request("POST", f"databases/{database_id}/query", json=body, priority=priority)
            chunk = data.get("results")
            if not isinstance(chunk, list):
                raise ProviderError(f"{self.PROVIDER}: query response has no results list")
            results.extend(item for item in chunk if isinstance(item, dict))

            cursor = data.get("next_cursor") if data.get("has_more") else None
            if not isinstance(cursor, str) or not cursor:
                return results

    async def update_page(
        self,
        page_id: str,
        properties: dict[str, Any],
        *,
        priority: Priority = Priority.BULK,
    ) -> dict[str, Any]:
        """PATCH page properties; returns the updated page."""
        return await self._scheduler.acquire_write(
            lambda: self._request(
                "PATCH",
                f"pages/{page_id}",
                json={"properties": properties},
                priority=priority,
                write=True,
            ),
            priority,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        priority: Priority,
        write: bool = False,
    ) -> dict[str, Any]:
        async def attempt() -> dict[str, Any]:
            if write:
                permit = await self._scheduler.acquire_write_permit(Provider.WORKSPACE)
            else:
                permit = await self._scheduler.acquire_read(Provider.WORKSPACE, priority)
            token = self._tokens[permit.credential % len(self._tokens)]
            request = self._client.build_request(
                method,
                path,
                json=json,
                headers={"Authorization": f"Bearer {token}"},
            )
            return await send(self._client, request, provider=self.PROVIDER)

        return await self._retry.run(attempt, name=f"notion {method} {path}")
