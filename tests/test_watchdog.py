# tests/test_watchdog.py

from __future__ import annotations

import asyncio

import pytest

from hoursync.core.alerts import AlertNotifier
from hoursync.sync.watchdog import Watchdog

from .fakes import FakeClock, FakeMessenger, HangingMessenger


@pytest.mark.asyncio
async def test_stall_is_reported_after_timeout() -> None:
    clock = FakeClock()
    messenger = FakeMessenger()

    async def sleep(delay: float) -> None:
        clock.advance(delay)

    watchdog = Watchdog(180, 30, alerts=AlertNotifier(messenger, clock=clock), clock=clock, sleep=sleep)

    elapsed = await watchdog.run()

    assert elapsed == 210
    assert messenger.sent == ["no heartbeat for 3.5 minutes, exiting to allow restart"]


@pytest.mark.asyncio
async def test_beats_keep_it_quiet() -> None:
    clock = FakeClock()
    checks = 0

    async def sleep(delay: float) -> None:
        nonlocal checks
        checks += 1
        clock.advance(delay)
        if checks <= 10:
            watchdog.beat()

    watchdog = Watchdog(180, 30, clock=clock, sleep=sleep)

    elapsed = await watchdog.run()

    # Last beat at check 10; the first check more than 180s later is check 17.
    assert checks == 17
    assert elapsed == 210


def test_stalled_flag(settings) -> None:
    clock = FakeClock()
    watchdog = Watchdog(settings.watchdog_timeout_seconds, settings.watchdog_check_seconds, clock=clock)
    assert not watchdog.stalled()
    clock.advance(180)
    assert not watchdog.stalled()
    clock.advance(1)
    assert watchdog.stalled()
    watchdog.beat()
    assert not watchdog.stalled()


@pytest.mark.asyncio
async def test_stall_is_reported_even_when_alert_cannot_be_delivered() -> None:
    clock = FakeClock()
    messenger = HangingMessenger()

    async def sleep(delay: float) -> None:
        clock.advance(delay)

    alerts = AlertNotifier(messenger, clock=clock, delivery_timeout_seconds=0.05)
    watchdog = Watchdog(180, 30, alerts=alerts, clock=clock, sleep=sleep)

    elapsed = await asyncio.wait_for(watchdog.run(), timeout=2.0)

    assert elapsed == 210
    assert messenger.attempts == 1
