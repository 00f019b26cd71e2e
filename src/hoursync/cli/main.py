# src/hoursync/cli/main.py

"""
CLI entrypoint.

Initializes logging, validates settings, builds AppState, then runs the sync
lanes until a signal arrives or the watchdog reports a stall.

Exit codes:
- 0: stopped by SIGINT/SIGTERM
- 1: watchdog stall or a lane died unexpectedly (let the supervisor restart us)
- 2: configuration error
"""

from __future__ import annotations

import asyncio
import logging
import signal

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..core.state import AppState
from ..errors import ConfigError
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_STALLED = 1
EXIT_CONFIG = 2


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Some platforms may not support it; Ctrl+C still raises KeyboardInterrupt.
            logger.debug("Signal handler for %s not installed", sig)


async def run_app(state: AppState, stop: asyncio.Event | None = None) -> int:
    """Run every lane plus the watchdog; return the process exit code."""
    if stop is None:
        stop = asyncio.Event()
        _install_signal_handlers(stop)

    lanes = [
        asyncio.create_task(state.poller.run_realtime(), name="realtime"),
        asyncio.create_task(state.poller.run_bulk(), name="bulk"),
        asyncio.create_task(state.poller.run_refresh(), name="refresh"),
    ]
    watchdog = asyncio.create_task(state.watchdog.run(), name="watchdog")
    stopper = asyncio.create_task(stop.wait(), name="stop")

    try:
        done, _ = await asyncio.wait([*lanes, watchdog, stopper], return_when=asyncio.FIRST_COMPLETED)
    finally:
        pending = [*lanes, watchdog, stopper]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        await state.aclose()

    if stopper in done:
        logger.info("Stop requested, shutting down...")
        return EXIT_OK
    if watchdog in done:
        return EXIT_STALLED

    for task in done:
        if not task.cancelled() and task.exception() is not None:
            logger.error("Lane %s died", task.get_name(), exc_info=task.exception())
        else:
            logger.error("Lane %s exited unexpectedly", task.get_name())
    return EXIT_STALLED


async def _amain(settings) -> int:
    state = await create_initial_state(settings=settings)
    return await run_app(state)


def main() -> None:
    settings = get_settings()

    level_name = str(settings.log_level).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    try:
        settings.validate()
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        raise SystemExit(EXIT_CONFIG) from None

    logger.info("Starting %s...", settings.app_name)

    try:
        code = asyncio.run(_amain(settings))
    except KeyboardInterrupt:
        code = EXIT_OK

    logger.info("Bye.")
    raise SystemExit(code)


if __name__ == "__main__":
    main()
