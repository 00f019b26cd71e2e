# src/hoursync/core/alerts.py

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from .ports import OutboundMessenger

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class LogMessenger(OutboundMessenger):
    """Fallback messenger when no chat channel is configured: alerts only go to the log."""

    sent: int = 0

    async def send_text(self, *, text: str) -> None:
        self.sent += 1
        logger.error("ALERT %s", text)


@dataclass(slots=True)
class AlertNotifier:
    """
    Human-facing alerts with de-duplication.

    Identical alert text is forwarded at most once per cooldown window; the
    suppressed repeats are still logged at DEBUG. Delivery failures are logged
    and never propagate into the sync loops. Delivery is bounded by
    `delivery_timeout_seconds`: callers such as the watchdog must get control
    back even when the chat server is unreachable.
    """

    messenger: OutboundMessenger
    cooldown_seconds: float = 6 * 3600.0
    clock: Callable[[], float] = time.monotonic
    delivery_timeout_seconds: float = 10.0
    _last_sent: dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings, messenger: OutboundMessenger) -> "AlertNotifier":
        return cls(
            messenger,
            cooldown_seconds=settings.alert_cooldown_seconds,
            delivery_timeout_seconds=settings.alert_timeout_seconds,
        )

    def _should_send(self, text: str) -> bool:
        now = self.clock()
        # Texts carry task names; forget the ones whose cooldown is over.
        cutoff = now - self.cooldown_seconds
        self._last_sent = {k: ts for k, ts in self._last_sent.items() if ts > cutoff}

        if text in self._last_sent:
            return False
        self._last_sent[text] = now
        return True

    async def notify(self, text: str, *, error: BaseException | None = None) -> bool:
        """Returns True when the alert was forwarded, False when suppressed or failed."""
        if error is not None:
            text = f"{text}: {error!r}"

        if not self._should_send(text):
            logger.debug("Alert suppressed (cooldown): %s", text)
            return False

        logger.warning("%s", text)
        try:
            await asyncio.wait_for(self.messenger.send_text(text=text), timeout=self.delivery_timeout_seconds)
        except asyncio.TimeoutError:
            logger.error("Alert delivery timed out after %.0fs", self.delivery_timeout_seconds)
            return False
        except Exception:
            logger.exception("Failed to deliver alert")
            return False
        return True
