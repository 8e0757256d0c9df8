# src/worktimer/timer/ticker.py

from __future__ import annotations

"""
Display ticker.

Every interval, while the timer is running, recompute the displayed total and hand it
to a render callback. Ticking never touches durable fields; it is a redraw only.
To stop, cancel the coroutine (or call Ticker.stop()).
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable

from .state_machine import TaskTimer
from .task_models import TaskStatus

logger = logging.getLogger(__name__)

Render = Callable[[int], None]


async def run_ticker(
        timer: TaskTimer,
        render: Render,
        *,
        interval_seconds: float = 0.25,
) -> None:
    sleep_s = max(0.01, float(interval_seconds))

    while True:
        if timer.status == TaskStatus.RUNNING:
            try:
                render(timer.display_ms())
            except Exception:
                logger.exception("Ticker render failed task_id=%s", timer.task_id)
        await asyncio.sleep(sleep_s)


class Ticker:
    """Owns the asyncio task running `run_ticker` for the currently displayed timer."""

    def __init__(self, render: Render, *, interval_seconds: float = 0.25) -> None:
        self._render = render
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._timer_id: str | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, timer: TaskTimer) -> None:
        if self.running and self._timer_id == timer.task_id:
            return
        self.stop()
        self._timer_id = timer.task_id
        self._task = asyncio.get_running_loop().create_task(
            run_ticker(timer, self._render, interval_seconds=self._interval_seconds),
            name=f"ticker:{timer.task_id}",
        )
        logger.debug("Ticker started task_id=%s", timer.task_id)

    def stop(self) -> None:
        """Abandon the pending interval. Safe to call when not running."""
        if self._task is not None:
            self._task.cancel()
            logger.debug("Ticker stopped task_id=%s", self._timer_id)
        self._task = None
        self._timer_id = None

    async def aclose(self) -> None:
        task = self._task
        self.stop()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
