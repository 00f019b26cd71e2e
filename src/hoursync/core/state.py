# src/hoursync/core/state.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..cache import CacheSet
from ..scheduling import RequestScheduler
from ..sync.engine import AggregationEngine
from ..sync.poller import Poller
from ..sync.watchdog import Watchdog
from .alerts import AlertNotifier
from .ports import OutboundMessenger, TimeTrackingSource, WorkspaceSource

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AppState:
    """Everything one running sync process owns. Built by cli.bootstrap."""

    settings: Any
    scheduler: RequestScheduler
    time_tracking: TimeTrackingSource
    workspace: WorkspaceSource
    caches: CacheSet
    messenger: OutboundMessenger
    alerts: AlertNotifier
    engine: AggregationEngine
    watchdog: Watchdog
    poller: Poller

    async def aclose(self) -> None:
        """Close network clients. Errors are logged, never raised."""
        for resource in (self.time_tracking, self.workspace, self.messenger):
            closer = getattr(resource, "aclose", None)
            if closer is None:
                continue
            try:
                await closer()
            except Exception:
                logger.debug("Closing %r failed", resource, exc_info=True)
