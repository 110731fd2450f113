# src/taskmirror/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then runs one session on the event loop:
- console REPL (optional),
- otherwise just keeps the live mirror running until interrupted.
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_initial_state, shutdown_state, start_session
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def run_session(settings) -> None:
    state = create_initial_state(settings=settings)
    start_session(state)
    try:
        if settings.console_enabled:
            await run_console_loop(state)
        else:
            logger.info("Console disabled. Mirroring tasks for user=%s. Press Ctrl+C to stop.", state.user_id)
            await asyncio.Event().wait()
    finally:
        await shutdown_state(state)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/taskmirror")
    setup_logging(log_dir=log_dir, console_level=console_level)

    logger.info("Starting %s...", getattr(settings, "app_name", "taskmirror"))

    try:
        asyncio.run(run_session(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
