# src/hoursync/scheduling/retry.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

import httpx

from ..errors import ProviderTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    """Only timeouts are retried; everything else is assumed to be a caller/data error."""
    return isinstance(exc, (ProviderTimeout, TimeoutError, httpx.TimeoutException))


@dataclass(slots=True)
class RetryPolicy:
    """
    Linear backoff: attempt N failing with a timeout waits base_delay * N seconds.

    After max_attempts timeouts the last error is re-raised unchanged.
    """

    max_attempts: int = 10
    base_delay: float = 1.0
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, int(settings.retry_max_attempts)),
            base_delay=max(0.0, float(settings.retry_base_delay_seconds)),
        )

    async def run(self, operation: Callable[[], Awaitable[T]], *, name: str) -> T:
        attempts = max(1, int(self.max_attempts))
        for attempt in range(1, attempts + 1):
            try:
                return await operation()
            except Exception as e:
                if not is_transient(e):
                    raise

                if attempt >= attempts:
                    logger.warning("%s failed after %d attempts due to timeouts", name, attempts)
                    raise

                delay = self.base_delay * attempt
                logger.info("%s attempt %d timed out, retrying in %.1fs...", name, attempt, delay)
                await self.sleep(delay)

        raise AssertionError("unreachable")
