# src/worktimer/logging_setup.py

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable
from pathlib import Path

LOG_FILE_NAME = "worktimer.log"

# Loggers that run on every tick or change event; console shows them at WARNING+.
PERIODIC_LOGGERS: tuple[str, ...] = (
    "worktimer.timer.ticker",
    "worktimer.cache.change_watch",
)


class _ConsoleNoiseFilter(logging.Filter):
    """Keep the prompt readable: periodic worktimer loggers and everything foreign stay quiet."""

    def __init__(self, periodic: Iterable[str] = PERIODIC_LOGGERS) -> None:
        super().__init__()
        self._periodic = tuple(periodic)

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.startswith("worktimer."):
            if name.startswith(self._periodic):
                return record.levelno >= logging.WARNING
            return True
        # Captured warnings.warn(...) ("py.warnings") and third-party loggers.
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/worktimer",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    periodic: Iterable[str] = PERIODIC_LOGGERS,
) -> Path:
    """
    Console handler on stderr (filtered) plus a full log file in `log_dir`.

    Replaces any handlers already on the root logger, so calling it twice does not
    duplicate output. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(min(console_level, file_level))
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter(periodic))
    root.addHandler(ch)

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    logging.captureWarnings(True)
    return log_file
