# src/hoursync/sync/watchdog.py

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from ..core.alerts import AlertNotifier

logger = logging.getLogger(__name__)


class Watchdog:
    """
    Liveness check for the poll loop.

    beat() is called whenever a write succeeds or a realtime poll completes.
    run() wakes every `check_seconds` and returns (with the stall duration)
    once no beat arrived for longer than `timeout_seconds`. The caller is
    expected to exit non-zero so the process supervisor restarts us.
    """

    def __init__(
        self,
        timeout_seconds: float = 180.0,
        check_seconds: float = 30.0,
        *,
        alerts: AlertNotifier | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.timeout_seconds = float(timeout_seconds)
        self.check_seconds = float(check_seconds)
        self._alerts = alerts
        self._clock = clock
        self._sleep = sleep
        self._last_beat = clock()

    @classmethod
    def from_settings(cls, settings, *, alerts: AlertNotifier | None = None) -> "Watchdog":
        return cls(settings.watchdog_timeout_seconds, settings.watchdog_check_seconds, alerts=alerts)

    def beat(self) -> None:
        self._last_beat = self._clock()

    @property
    def seconds_since_beat(self) -> float:
        return self._clock() - self._last_beat

    def stalled(self) -> bool:
        return self.seconds_since_beat > self.timeout_seconds

    async def run(self) -> float:
        logger.info("Watchdog started (timeout: %.0fs, check every %.0fs)", self.timeout_seconds, self.check_seconds)
        while True:
            await self._sleep(self.check_seconds)
            if not self.stalled():
                continue

            elapsed = self.seconds_since_beat
            message = f"no heartbeat for {round(elapsed / 60.0, 1)} minutes, exiting to allow restart"
            logger.error("%s", message)
            if self._alerts is not None:
                await self._alerts.notify(message)
            return elapsed
