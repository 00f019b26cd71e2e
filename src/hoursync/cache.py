# src/hoursync/cache.py

from __future__ import annotations

"""
Short-lived memoizing cache.

Values are stored as futures, so a lookup that is still in flight is shared:
two callers asking for the same key within one TTL window await the same
remote call. Keys are small frozen dataclasses, one type per namespace.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass(frozen=True, slots=True)
class PageKey:
    page_id: str


@dataclass(frozen=True, slots=True)
class QueryKey:
    database_id: str
    # Project ids the query is restricted to (empty = whole database), sorted.
    project_ids: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class HoursKey:
    task_name: str
    client_name: str


@dataclass(frozen=True, slots=True)
class ClientsKey:
    account: str = ""


@dataclass(slots=True)
class _Entry(Generic[V]):
    future: asyncio.Future[V]
    expires_at: float


class MemoCache(Generic[K, V]):
    """
    get(key) -> shared future or None; set(key, awaitable-or-value, ttl).

    A future that fails is evicted as soon as it fails, so errors are not
    memoized for the rest of the TTL window.
    """

    def __init__(
        self,
        namespace: str,
        ttl_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.namespace = namespace
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._entries: dict[K, _Entry[V]] = {}

    def __len__(self) -> int:
        self._purge()
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]

    def get(self, key: K) -> asyncio.Future[V] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry.future

    def set(self, key: K, value: Awaitable[V] | V, ttl: float | None = None) -> asyncio.Future[V]:
        """Store a pending awaitable or an already-resolved value."""
        if isinstance(value, asyncio.Future) or asyncio.iscoroutine(value):
            future: asyncio.Future[V] = asyncio.ensure_future(value)
        else:
            future = asyncio.get_running_loop().create_future()
            future.set_result(value)  # type: ignore[arg-type]

        lifetime = self.ttl_seconds if ttl is None else float(ttl)
        entry = _Entry(future=future, expires_at=self._clock() + lifetime)
        self._entries[key] = entry
        future.add_done_callback(lambda f, k=key, e=entry: self._evict_failed(k, e, f))
        return future

    async def get_or_load(self, key: K, loader: Callable[[], Awaitable[V]]) -> V:
        """Return the cached value for `key`, starting `loader()` only on a miss."""
        future = self.get(key)
        if future is None:
            logger.debug("cache miss %s %r", self.namespace, key)
            future = self.set(key, loader())
        # Shield: one waiter being cancelled must not cancel the shared call.
        return await asyncio.shield(future)

    def invalidate(self, key: K) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def _evict_failed(self, key: K, entry: _Entry[Any], future: asyncio.Future[Any]) -> None:
        if future.cancelled() or future.exception() is not None:
            if self._entries.get(key) is entry:
                del self._entries[key]

    def _purge(self) -> None:
        now = self._clock()
        for key in [k for k, e in self._entries.items() if e.expires_at <= now]:
            del self._entries[key]


@dataclass(slots=True)
class CacheSet:
    """All namespaces used by the app, built once from settings."""

    pages: MemoCache[PageKey, dict[str, Any]]
    queries: MemoCache[QueryKey, list[dict[str, Any]]]
    hours: MemoCache[HoursKey, float]
    clients: MemoCache[ClientsKey, list[Any]]

    @classmethod
    def from_settings(cls, settings, *, clock: Callable[[], float] = time.monotonic) -> "CacheSet":
        return cls(
            pages=MemoCache("pages", settings.page_cache_ttl_seconds, clock=clock),
            queries=MemoCache("queries", settings.query_cache_ttl_seconds, clock=clock),
            hours=MemoCache("hours", settings.hours_cache_ttl_seconds, clock=clock),
            clients=MemoCache("clients", settings.query_cache_ttl_seconds, clock=clock),
        )
