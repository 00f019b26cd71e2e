# src/hoursync/logging_setup.py

from __future__ import annotations

import logging
import sys
import time
from pathlib import Path


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the console readable for a long-running daemon:
    - allow all hoursync logs
    - HTTP / Matrix client libraries only at WARNING+
    - suppress Python warnings (captured as 'py.warnings') unless ERROR+
    - any other third-party logger only at ERROR+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if name.startswith("hoursync"):
            return True

        if name.startswith(("httpx", "httpcore", "nio")):
            return record.levelno >= logging.WARNING

        if name == "py.warnings":
            return record.levelno >= logging.ERROR

        return record.levelno >= logging.ERROR


class _DuplicateMessageFilter(logging.Filter):
    """
    Drop a console line identical to one emitted within the last `window_seconds`.

    The realtime loop re-processes the same entries every few seconds, so
    "[SKIP] ... did not change" would otherwise repeat forever.
    """

    def __init__(self, window_seconds: float = 60.0) -> None:
        super().__init__()
        self.window_seconds = window_seconds
        self._seen: dict[str, float] = {}

    def filter(self, record: logging.LogRecord) -> bool:
        now = time.monotonic()
        key = f"{record.name}:{record.levelno}:{record.getMessage()}"

        last = self._seen.get(key)
        if last is not None and now - last < self.window_seconds:
            return False

        self._seen[key] = now
        if len(self._seen) > 4096:
            cutoff = now - self.window_seconds
            self._seen = {k: ts for k, ts in self._seen.items() if ts >= cutoff}
        return True


def setup_logging(
    *,
    log_dir: str | Path = ".local/hoursync",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    dedup_window_seconds: float = 60.0,
) -> None:
    """
    Configure logging with:
    - Console handler: filtered and de-duplicated
    - File handler: full logs for debugging

    Call this ONCE, very early (before first logger.info).
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "hoursync.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Remove any pre-existing handlers to avoid duplicates.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter())
    ch.addFilter(_DuplicateMessageFilter(dedup_window_seconds))
    root.addHandler(ch)

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    logging.captureWarnings(True)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("nio").setLevel(logging.INFO)
