# src/worktimer/connectors/console_connector.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
import threading
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.clock import format_duration
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    try:
        if sys.stdout.isatty():
            sys.stdout.write("\033[1A\033[2K\r")
            sys.stdout.write(line + "\n")
            sys.stdout.flush()
        else:
            print(line)
    except OSError:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


def render_title(display_ms: int) -> None:
    """Ticker redraw target: the terminal window title, so typing is never disturbed."""
    if not sys.stdout.isatty():
        return
    sys.stdout.write(f"\033]0;worktimer {format_duration(display_ms)}\007")
    sys.stdout.flush()


async def _read_line(prompt: str) -> str:
    """
    input() on a daemon thread.

    A plain executor thread would keep the interpreter alive on Ctrl+C until the
    user pressed Enter; a daemon thread is simply abandoned.
    """
    loop = asyncio.get_running_loop()
    fut: asyncio.Future[str] = loop.create_future()

    def deliver(line: str | None, exc: BaseException | None) -> None:
        if fut.done():
            return
        if exc is not None:
            fut.set_exception(exc)
        else:
            fut.set_result(line or "")

    def reader() -> None:
        try:
            line = input(prompt)
        except (EOFError, OSError) as e:
            loop.call_soon_threadsafe(deliver, None, e)
        else:
            loop.call_soon_threadsafe(deliver, line, None)

    threading.Thread(target=reader, name="console-input", daemon=True).start()
    return await fut


async def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started (user=%s).", state.workspace.actor_id)
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.\n")

    def emit(text: str) -> None:
        print(f"[{_ts_local()}] {text}", flush=True)

    while True:
        try:
            user_input = (await _read_line(">>> ")).strip()
            _rewrite_prev_line(f"[{_ts_local()}] >>> {user_input}")
        except (EOFError, OSError):
            logger.info("Console EOF received, exiting.")
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            reply = await command_registry.handle(state, user_input, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        if reply is None:
            reply = "Commands start with '/'. Use /help to list them."
        _print_ts(reply)

    with contextlib.suppress(OSError):
        if sys.stdout.isatty():
            sys.stdout.write("\033]0;\007")
            sys.stdout.flush()
    logger.info("Console connector finished.")
