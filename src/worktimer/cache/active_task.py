# src/worktimer/cache/active_task.py

from __future__ import annotations

import logging

from ..core.errors import MissingTableError
from ..core.ports import RemoteStore
from ..core.session import ActorSession
from ..store.filters import Eq
from ..timer.anchor_store import ActiveTaskPointer, AnchorStore
from ..timer.sync_gateway import TASKS_TABLE
from ..timer.task_api import find_active_task
from ..timer.task_models import Task
from .query_cache import CacheLookup, LookupSource

logger = logging.getLogger(__name__)

ACTIVE_TASK_FEATURE = "active_task"


class ActiveTaskReconciler:
    """
    Re-find the task the user was working on after a restart or scope change.

    The local pointer says which task it was; the store says whether it is still
    running/paused. Without a pointer for the project (signed out, local state lost)
    the store is asked for the project's running/paused task directly.
    Identical concurrent lookups (same actor, project and task) are de-duplicated:
    the second caller is turned away with SKIPPED.
    """

    def __init__(
        self,
        store: RemoteStore,
        session: ActorSession,
        pointer: ActiveTaskPointer,
        anchors: AnchorStore,
    ) -> None:
        self._store = store
        self._session = session
        self._pointer = pointer
        self._anchors = anchors

    def _forget(self, task_id: str) -> None:
        # Only if nobody pointed the slot at a newer task meanwhile.
        ref = self._pointer.read()
        if ref is not None and ref.task_id != task_id:
            return
        self._pointer.clear()
        self._anchors.clear()

    async def reconcile(self, project_id: str | None) -> CacheLookup[Task]:
        if not project_id or not self._session.is_available(ACTIVE_TASK_FEATURE):
            return CacheLookup(LookupSource.FETCHED, None)

        ref = self._pointer.read()
        if ref is None or ref.project_id != project_id:
            return await self._discover(project_id)

        actor = self._session.actor_id
        key = f"{actor}:{project_id}:{ref.task_id}"
        guard = self._session.reconcile_guard
        if not guard.try_acquire(key):
            logger.debug("Active task lookup already in flight key=%s", key)
            return CacheLookup(LookupSource.SKIPPED)

        try:
            result = await self._store.read(
                TASKS_TABLE,
                [Eq("id", ref.task_id), Eq("project_id", project_id), Eq("user_id", actor)],
            )
        except MissingTableError:
            logger.warning("Tasks table missing; dropping active task pointer")
            self._session.disable(ACTIVE_TASK_FEATURE)
            self._forget(ref.task_id)
            return CacheLookup(LookupSource.FETCHED, None)
        finally:
            guard.release(key)

        row = result.rows[0] if result.rows else None
        task = Task.from_row(row) if row is not None else None
        if task is not None and not task.is_terminal:
            logger.info("Active task %s restored status=%s", task.id, task.status)
            return CacheLookup(LookupSource.FETCHED, task)

        logger.info("Active task pointer %s is stale; clearing", ref.task_id)
        self._forget(ref.task_id)
        return CacheLookup(LookupSource.FETCHED, None)

    async def _discover(self, project_id: str) -> CacheLookup[Task]:
        """No pointer for this project: ask the store for a running/paused task and remember it."""
        actor = self._session.actor_id
        key = f"{actor}:{project_id}:*"
        guard = self._session.reconcile_guard
        if not guard.try_acquire(key):
            logger.debug("Active task discovery already in flight key=%s", key)
            return CacheLookup(LookupSource.SKIPPED)

        try:
            task = await find_active_task(self._store, user_id=actor, project_id=project_id)
        except MissingTableError:
            logger.warning("Tasks table missing; active task lookup disabled")
            self._session.disable(ACTIVE_TASK_FEATURE)
            return CacheLookup(LookupSource.FETCHED, None)
        finally:
            guard.release(key)

        if task is None:
            return CacheLookup(LookupSource.FETCHED, None)
        # A pointer written while the read was in flight wins.
        current = self._pointer.read()
        if current is not None and current.project_id == project_id and current.task_id != task.id:
            return CacheLookup(LookupSource.FETCHED, None)
        self._pointer.write(project_id, task.id)
        logger.info("Active task %s found in store status=%s", task.id, task.status)
        return CacheLookup(LookupSource.FETCHED, task)
