# src/hoursync/providers/harvest.py

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx

from ..errors import ProviderError
from ..scheduling import Priority, Provider, RequestScheduler, RetryPolicy
from .http import send
from .models import Parsed, TimeEntry, TrackedClient, parse_time_entry, parse_tracked_client

logger = logging.getLogger(__name__)


class HarvestAPI:
    """
    Read-only Harvest v2 client.

    Every page request takes its own rate permit, so a long paginated listing
    competes fairly with other work at its priority.
    """

    PROVIDER = "harvest"

    def __init__(
        self,
        *,
        token: str,
        account_id: str,
        scheduler: RequestScheduler,
        retry: RetryPolicy | None = None,
        base_url: str = "https://api.harvestapp.com/v2",
        user_agent: str = "hoursync",
        timeout: float = 30.0,
        per_page: int = 2000,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._retry = retry or RetryPolicy()
        self._per_page = per_page
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/",
            headers={
                "Authorization": f"Bearer {token}",
                "Harvest-Account-Id": str(account_id),
                "User-Agent": user_agent,
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
    ) -> "HarvestAPI":
        return cls(
            token=settings.harvest_token or "",
            account_id=settings.harvest_account_id or "",
            scheduler=scheduler,
            retry=RetryPolicy.from_settings(settings),
            base_url=settings.harvest_base_url,
            user_agent=settings.harvest_user_agent,
            timeout=settings.request_timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def list_time_entries(
        self,
        *,
        updated_since: datetime | None = None,
        is_running: bool | None = None,
        client_id: int | None = None,
        priority: Priority = Priority.BULK,
    ) -> list[TimeEntry]:
        """Entries matching the filters. Entries that fail to parse are dropped."""
        params: dict[str, Any] = {}
        if updated_since is not None:
            params["updated_since"] = updated_since.isoformat()
        if is_running is not None:
            params["is_running"] = "true" if is_running else "false"
        if client_id is not None:
            params["client_id"] = client_id

        out: list[TimeEntry] = []
        dropped = 0
        for raw in await self._paginate("time_entries", "time_entries", params, priority):
            parsed = parse_time_entry(raw)
            if isinstance(parsed, Parsed):
                out.append(parsed.value)
            else:
                dropped += 1
                logger.debug("Dropping time entry: %s", parsed.reason)
        if dropped:
            logger.debug("Dropped %d unparsable time entries (%s)", dropped, params)
        return out

    async def list_clients(self, *, priority: Priority = Priority.BULK) -> list[TrackedClient]:
        out: list[TrackedClient] = []
        for raw in await self._paginate("clients", "clients", {}, priority):
            parsed = parse_tracked_client(raw)
            if isinstance(parsed, Parsed):
                out.append(parsed.value)
            else:
                logger.debug("Dropping client: %s", parsed.reason)
        return out

    async def _paginate(
        self,
        path: str,
        key: str,
        params: dict[str, Any],
        priority: Priority,
    ) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            data = await self._get(path, {**params, "page": page, "per_page": self._per_page}, priority)
            chunk = data.get(key)
            if not isinstance(chunk, list):
                raise ProviderError(f"{self.PROVIDER}: response for {path} has no {key!r} list")
            items.extend(item for item in chunk if isinstance(item, dict))

            next_page = data.get("next_page")
            if not isinstance(next_page, int) or next_page <= page:
                return items
            page = next_page

    async def _get(self, path: str, params: dict[str, Any], priority: Priority) -> dict[str, Any]:
        async def attempt() -> dict[str, Any]:
            await self._scheduler.acquire_read(Provider.TIME_TRACKING, priority)
            request = self._client.build_request("GET", path, params=params)
            return await send(self._client, request, provider=self.PROVIDER)

        return await self._retry.run(attempt, name=f"harvest GET {path} {params}")
