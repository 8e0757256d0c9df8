# src/worktimer/timer/finalize.py

from __future__ import annotations

import logging
import math

from ..core.ports import Clock, RemoteStore
from ..store.filters import Eq, In
from .state_machine import UnloadPayload, build_finalize_patch
from .sync_gateway import TASKS_TABLE
from .task_models import ACTIVE_STATUSES, TaskStatus

logger = logging.getLogger(__name__)


async def finalize_task(
    store: RemoteStore,
    *,
    task_id: str,
    last_known_status: str | TaskStatus,
    client_accumulated_ms: float,
    clock: Clock,
) -> bool:
    """
    Finish a task on session teardown with the client's best estimate of its total.

    Idempotent: the write only matches running/paused rows, so a task that is already
    finished or canceled is left untouched and False is returned.
    Raises ValueError for a payload that could not have come from an active timer.
    """
    if not task_id:
        raise ValueError("Invalid payload: task_id is required")
    try:
        status = TaskStatus(str(last_known_status))
    except ValueError:
        raise ValueError(f"Invalid payload: unknown status {last_known_status!r}") from None
    if status not in ACTIVE_STATUSES:
        raise ValueError(f"Invalid payload: status {status.value} cannot be finalized")
    try:
        accumulated = float(client_accumulated_ms)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid payload: accumulated time {client_accumulated_ms!r}") from None
    if not math.isfinite(accumulated):
        raise ValueError(f"Invalid payload: accumulated time {client_accumulated_ms!r} is not finite")

    patch = build_finalize_patch(clock.now_ms(), accumulated)
    row = await store.update(
        TASKS_TABLE,
        [Eq("id", task_id), In.of("status", ACTIVE_STATUSES)],
        patch,
    )
    if row is None:
        logger.info("Finalize skipped, task %s already terminal or gone", task_id)
        return False
    logger.info("Task %s finalized on unload duration_ms=%s", task_id, patch["duration_ms"])
    return True


async def finalize_payload(store: RemoteStore, payload: UnloadPayload, *, clock: Clock) -> bool:
    return await finalize_task(
        store,
        task_id=payload.task_id,
        last_known_status=payload.status,
        client_accumulated_ms=payload.client_accumulated_ms,
        clock=clock,
    )
