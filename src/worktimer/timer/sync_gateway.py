# src/worktimer/timer/sync_gateway.py

from __future__ import annotations

import logging
from typing import Any

from ..core.errors import TaskAlreadyTerminalError
from ..core.ports import RemoteStore
from ..store.filters import Eq, In
from .task_models import ACTIVE_STATUSES, Task

logger = logging.getLogger(__name__)

TASKS_TABLE = "tasks"


class SyncGateway:
    """
    Writes a transition patch to the remote store and hands back the stored row.

    The write is filtered to rows that are still running/paused, so a finalize racing
    a user finish can never bring a terminal task back. Failures propagate; nothing
    is retried here.
    """

    def __init__(self, store: RemoteStore) -> None:
        self._store = store

    async def apply(self, task_id: str, patch: dict[str, Any]) -> Task:
        filters = [Eq("id", task_id), In.of("status", ACTIVE_STATUSES)]
        row = await self._store.update(TASKS_TABLE, filters, patch)
        if row is None:
            logger.info("Patch rejected, task %s is no longer active", task_id)
            raise TaskAlreadyTerminalError(task_id)
        task = Task.from_row(row)
        logger.debug("Task %s synced status=%s accumulated_ms=%s", task.id, task.status, task.accumulated_ms)
        return task
