# src/worktimer/timer/state_machine.py

from __future__ import annotations

"""
Task timer state machine.

Running --pause--> Paused --resume--> Running
Running/Paused --finish--> Finished      (terminal)
Running/Paused --cancel--> Canceled      (terminal)
Running/Paused --external finalize--> Finished

Every transition:
- computes a patch from the local register + the clock (pure functions below),
- applies it to the register immediately so the displayed clock reacts at once,
- sends it through the SyncGateway and then replaces the register wholesale with
  the row the store returns (never a field-by-field merge).

Calls that make no sense in the current state (pause while paused, anything on a
terminal task) are no-ops and return None. Store errors propagate to the caller;
the optimistic register is kept either way.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from ..core.clock import ms_to_iso
from ..core.errors import StoreError
from ..core.ports import Clock
from .anchor_store import AnchorStore
from .elapsed import display_duration_ms, paused_at_ms, paused_total_ms, running_start_ms, slice_ms
from .sync_gateway import SyncGateway
from .task_models import Task, TaskStatus

logger = logging.getLogger(__name__)

Patch = dict[str, Any]


# ---- patch builders (pure) ----

def build_pause_patch(task: Task, now_ms: int, started_ms: int) -> Patch:
    return {
        "status": TaskStatus.PAUSED.value,
        "accumulated_ms": task.accumulated_ms + slice_ms(started_ms, now_ms),
        "pause_count": task.pause_count + 1,
        "paused_ms": task.paused_ms,
        "paused_at": ms_to_iso(now_ms),
    }


def build_resume_patch(task: Task, now_ms: int, pause_began_ms: int) -> Patch:
    return {
        "status": TaskStatus.RUNNING.value,
        # unchanged, sent so the stored row agrees with what the clock shows
        "accumulated_ms": task.accumulated_ms,
        "paused_ms": task.paused_ms + slice_ms(pause_began_ms, now_ms),
        "paused_at": None,
    }


def _final_paused_ms(task: Task, now_ms: int, pause_began_ms: int | None) -> int:
    if task.status == TaskStatus.PAUSED and pause_began_ms is not None:
        return task.paused_ms + slice_ms(pause_began_ms, now_ms)
    return task.paused_ms


def build_finish_patch(
        task: Task,
        now_ms: int,
        started_ms: int | None,
        pause_began_ms: int | None,
) -> Patch:
    final_ms = task.accumulated_ms
    if task.status == TaskStatus.RUNNING and started_ms is not None:
        final_ms += slice_ms(started_ms, now_ms)
    return {
        "status": TaskStatus.FINISHED.value,
        "ended_at": ms_to_iso(now_ms),
        "duration_ms": final_ms,
        "accumulated_ms": final_ms,
        "paused_ms": _final_paused_ms(task, now_ms, pause_began_ms),
        "paused_at": None,
    }


def build_cancel_patch(task: Task, now_ms: int, pause_began_ms: int | None) -> Patch:
    # Canceled work is recorded as having happened but counts for nothing.
    return {
        "status": TaskStatus.CANCELED.value,
        "ended_at": ms_to_iso(now_ms),
        "duration_ms": 0,
        "accumulated_ms": 0,
        "paused_ms": _final_paused_ms(task, now_ms, pause_began_ms),
        "paused_at": None,
    }


def build_finalize_patch(now_ms: int, client_accumulated_ms: float) -> Patch:
    final_ms = max(0, int(client_accumulated_ms))
    return {
        "status": TaskStatus.FINISHED.value,
        "ended_at": ms_to_iso(now_ms),
        "duration_ms": final_ms,
        "accumulated_ms": final_ms,
        "paused_at": None,
    }


def apply_patch_locally(task: Task, patch: Patch) -> Task:
    fields = dict(patch)
    if "status" in fields:
        fields["status"] = TaskStatus(fields["status"])
    return replace(task, **fields)


@dataclass(slots=True, frozen=True)
class UnloadPayload:
    """What the finalize-on-unload entry point needs from the client."""

    task_id: str
    status: TaskStatus
    client_accumulated_ms: int


class TaskTimer:
    """
    Single source-of-truth register for one task plus the local slice anchors.

    `display_ms()` is a pure read (register + clock) and is what the ticker redraws.
    """

    def __init__(
            self,
            task: Task,
            *,
            clock: Clock,
            anchors: AnchorStore,
            gateway: SyncGateway,
            on_change: Callable[[Task], None] | None = None,
    ) -> None:
        self._clock = clock
        self._anchors = anchors
        self._gateway = gateway
        self._on_change = on_change
        self._task = task
        self._running_start_ms: int | None = None
        self._paused_at_ms: int | None = None
        # Bumped per issued transition; only the newest confirmation is adopted.
        self._issued = 0
        self._syncing = 0
        self._version = 0
        self._adopt(task)

    # ---- read side ----

    @property
    def task(self) -> Task:
        return self._task

    @property
    def task_id(self) -> str:
        return self._task.id

    @property
    def status(self) -> TaskStatus:
        return self._task.status

    @property
    def version(self) -> int:
        """Changes whenever the register is replaced by a transition or an adopted row."""
        return self._version

    @property
    def syncing(self) -> bool:
        return self._syncing > 0

    @property
    def running_start_ms(self) -> int | None:
        return self._running_start_ms

    def display_ms(self) -> int:
        return display_duration_ms(self._task, self._clock.now_ms(), self._running_start_ms)

    def paused_display_ms(self) -> int:
        return paused_total_ms(self._task, self._clock.now_ms(), self._paused_at_ms)

    def unload_payload(self) -> UnloadPayload | None:
        if self._task.is_terminal:
            return None
        return UnloadPayload(
            task_id=self._task.id,
            status=self._task.status,
            client_accumulated_ms=self.display_ms(),
        )

    # ---- register maintenance ----

    def _adopt(self, task: Task) -> None:
        """Replace the register wholesale and re-derive the local anchors from it."""
        self._task = task
        self._version += 1
        now = self._clock.now_ms()
        if task.status == TaskStatus.RUNNING:
            stored = self._anchors.read(task.id)
            self._running_start_ms = running_start_ms(task, now, stored)
            self._paused_at_ms = None
            self._anchors.write(task.id, self._running_start_ms)
        elif task.status == TaskStatus.PAUSED:
            self._running_start_ms = None
            # Keep our own pause anchor for this task; the stored one is only a fallback.
            if self._paused_at_ms is None:
                self._paused_at_ms = paused_at_ms(task, now)
            self._anchors.clear()
        else:
            self._running_start_ms = None
            self._paused_at_ms = None
            self._anchors.clear()

    def adopt(self, task: Task) -> None:
        """Adopt a row fetched elsewhere (reload, change feed)."""
        if task.id != self._task.id:
            raise ValueError(f"row {task.id} does not belong to timer {self._task.id}")
        self._issued += 1
        self._paused_at_ms = None
        self._adopt(task)
        self._notify()

    def _notify(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(self._task)
        except Exception:
            logger.exception("Timer change listener failed task_id=%s", self._task.id)

    async def _commit(self, event: str, patch: Patch) -> Task:
        task_id = self._task.id
        self._task = apply_patch_locally(self._task, patch)
        self._version += 1
        self._issued += 1
        issued = self._issued
        logger.info("Task %s %s -> %s (optimistic)", task_id, event, self._task.status)
        self._notify()

        self._syncing += 1
        try:
            row = await self._gateway.apply(task_id, patch)
        except StoreError:
            logger.warning("Task %s %s not confirmed; keeping local state", task_id, event, exc_info=True)
            raise
        finally:
            self._syncing -= 1

        if issued != self._issued:
            logger.debug("Task %s %s confirmation superseded by a newer transition", task_id, event)
            return row
        self._adopt(row)
        self._notify()
        return row

    # ---- transitions ----

    async def pause(self) -> Task | None:
        if self._task.status != TaskStatus.RUNNING:
            return None
        now = self._clock.now_ms()
        started = self._running_start_ms if self._running_start_ms is not None else now
        patch = build_pause_patch(self._task, now, started)
        self._running_start_ms = None
        self._paused_at_ms = now
        self._anchors.clear()
        return await self._commit("pause", patch)

    async def resume(self) -> Task | None:
        if self._task.status != TaskStatus.PAUSED:
            return None
        now = self._clock.now_ms()
        began = self._paused_at_ms if self._paused_at_ms is not None else now
        patch = build_resume_patch(self._task, now, began)
        self._running_start_ms = now
        self._paused_at_ms = None
        self._anchors.write(self._task.id, now)
        return await self._commit("resume", patch)

    async def finish(self) -> Task | None:
        if self._task.is_terminal:
            return None
        now = self._clock.now_ms()
        patch = build_finish_patch(self._task, now, self._running_start_ms, self._paused_at_ms)
        self._running_start_ms = None
        self._paused_at_ms = None
        self._anchors.clear()
        return await self._commit("finish", patch)

    async def cancel(self) -> Task | None:
        if self._task.is_terminal:
            return None
        now = self._clock.now_ms()
        patch = build_cancel_patch(self._task, now, self._paused_at_ms)
        self._running_start_ms = None
        self._paused_at_ms = None
        self._anchors.clear()
        return await self._commit("cancel", patch)
