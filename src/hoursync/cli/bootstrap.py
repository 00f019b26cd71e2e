# src/hoursync/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the HTTP providers, scheduler, caches and sync components into AppState.
"""

from __future__ import annotations

import logging

import httpx

from ..cache import CacheSet
from ..config import get_settings
from ..connectors.matrix_client import MatrixMessenger, create_matrix_client
from ..core.alerts import AlertNotifier, LogMessenger
from ..core.ports import OutboundMessenger
from ..core.state import AppState
from ..providers.harvest import HarvestAPI
from ..providers.models import WorkspaceSchema
from ..providers.notion import NotionAPI
from ..scheduling import Provider, RequestScheduler
from ..sync.engine import AggregationEngine
from ..sync.hours import HoursLookup
from ..sync.matching import NameMatcher
from ..sync.poller import Poller
from ..sync.watchdog import Watchdog
from ..sync.workspace import WorkspaceGateway

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)


async def create_messenger(settings) -> OutboundMessenger:
    """Matrix room when configured and reachable, otherwise the log."""
    if not settings.matrix_enabled:
        logger.info("Matrix alerts not configured; alerts go to the log only")
        return LogMessenger()

    client = await create_matrix_client(settings)
    if client is None:
        logger.warning("Matrix client unavailable; alerts go to the log only")
        return LogMessenger()
    return MatrixMessenger(client, settings.alert_room_id)


async def create_initial_state(
    *,
    settings=None,
    messenger: OutboundMessenger | None = None,
    harvest_transport: httpx.AsyncBaseTransport | None = None,
    notion_transport: httpx.AsyncBaseTransport | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Settings, messenger and HTTP transports are injectable for tests.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    scheduler = RequestScheduler.from_settings(settings)
    harvest = HarvestAPI.from_settings(settings, scheduler, transport=harvest_transport)
    notion = NotionAPI.from_settings(settings, scheduler, transport=notion_transport)
    caches = CacheSet.from_settings(settings)
    matcher = NameMatcher.from_settings(settings)

    if messenger is None:
        messenger = await create_messenger(settings)
    alerts = AlertNotifier.from_settings(settings, messenger)
    watchdog = Watchdog.from_settings(settings, alerts=alerts)

    engine = AggregationEngine(
        WorkspaceGateway.from_settings(settings, notion, caches),
        HoursLookup(harvest, caches, matcher),
        alerts,
        matcher,
        refresh_interval_seconds=settings.refresh_interval_seconds,
        on_write=watchdog.beat,
    )
    poller = Poller.from_settings(settings, harvest, engine, matcher, watchdog=watchdog)

    logger.info(
        "Sync wired: %d workspace credential(s), writing to %r",
        scheduler.credentials(Provider.WORKSPACE),
        WorkspaceSchema.from_settings(settings).time_spent,
    )

    return AppState(
        settings=settings,
        scheduler=scheduler,
        time_tracking=harvest,
        workspace=notion,
        caches=caches,
        messenger=messenger,
        alerts=alerts,
        engine=engine,
        watchdog=watchdog,
        poller=poller,
    )
