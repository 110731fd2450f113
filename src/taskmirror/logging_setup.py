# src/taskmirror/logging_setup.py

from __future__ import annotations

"""
Logging for the console session.

The REPL shares stderr with the prompt, so the console handler only lets
through what a user typing commands cares about. Every record still lands
in <log_dir>/taskmirror.log.
"""

import logging
import sys
from pathlib import Path

# Loggers that fire on every live-query push.
_PER_PUSH_LOGGERS = ("taskmirror.store.", "taskmirror.tasks.subscriptions")


class _ConsoleNoiseFilter(logging.Filter):
    """Pushes are only shown when something went wrong; asyncio and warnings only at ERROR."""

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.startswith(_PER_PUSH_LOGGERS):
            return record.levelno >= logging.WARNING
        if name.startswith("taskmirror."):
            return True
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/taskmirror",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> None:
    """
    Install the stderr handler (filtered, console_level) and the
    taskmirror.log file handler (file_level) on the root logger.

    Replaces any handlers already there; run_session calls it before the
    store is opened.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "taskmirror.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

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
    root.addHandler(ch)

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    # Deprecation warnings from dependencies end up in the log file as 'py.warnings'.
    logging.captureWarnings(True)
