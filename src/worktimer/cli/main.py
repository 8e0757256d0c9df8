# src/worktimer/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, signs the configured user in, then runs the
console REPL (or just keeps the process alive when the console is disabled).
On exit the active task is optionally finalized with its locally displayed total.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import render_title, run_console_loop
from ..core.errors import StoreError, friendly_store_error
from ..core.state import AppState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    ws = state.workspace
    if getattr(state.settings, "finalize_on_exit", False):
        try:
            if await ws.finalize_active():
                logger.info("Active task finalized on exit.")
        except (StoreError, ValueError):
            logger.exception("Failed to finalize the active task on exit.")

    try:
        await ws.close()
    except Exception:
        logger.debug("Workspace close failed.", exc_info=True)

    # The store uses short-lived sqlite connections per call; this only drops subscribers.
    state.store.close()  # type: ignore[attr-defined]


async def run(settings) -> None:
    state = create_initial_state(settings=settings, render=render_title)

    try:
        await state.workspace.sign_in(settings.user_id)
    except StoreError as e:
        logger.warning("Sign-in failed: %s", friendly_store_error(e))

    stop_main = asyncio.Event()
    loop = asyncio.get_running_loop()

    try:
        if settings.console_enabled:
            await run_console_loop(state)
        else:
            for sig in (signal.SIGINT, signal.SIGTERM):
                # Some platforms do not support loop signal handlers.
                with contextlib.suppress(NotImplementedError, RuntimeError):
                    loop.add_signal_handler(sig, stop_main.set)
            logger.info("Console disabled. Ticking in the background. Press Ctrl+C to stop.")
            await stop_main.wait()
    finally:
        await _shutdown(state)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/worktimer")
    setup_logging(log_dir=log_dir, console_level=console_level)

    logger.info("Starting %s...", getattr(settings, "app_name", "worktimer"))

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(run(settings))
    logger.info("Bye.")


if __name__ == "__main__":
    main()
