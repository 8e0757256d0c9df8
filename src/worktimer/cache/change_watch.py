# src/worktimer/cache/change_watch.py

from __future__ import annotations

import logging
from collections.abc import Callable

from ..core.ports import ChangeEvent, ChangeFeed
from ..core.session import ActorSession
from ..timer.sync_gateway import TASKS_TABLE
from ..timer.task_api import PROJECTS_SCOPE, PROJECTS_TABLE
from .history import history_scope

logger = logging.getLogger(__name__)


def watch_session(
    feed: ChangeFeed,
    session: ActorSession,
    *,
    on_task_change: Callable[[ChangeEvent], None] | None = None,
) -> Callable[[], None]:
    """
    Keep the session cache honest while the store changes underneath it.

    - any tasks row of this actor -> bump that project's history scope, then call
      on_task_change (the workspace re-fetches the active task from it)
    - any projects row of this actor -> bump the projects scope

    Returns a callable that removes both subscriptions.
    """

    def on_tasks(event: ChangeEvent) -> None:
        if session.cache.closed or event.row.get("user_id") != session.actor_id:
            return
        project_id = event.row.get("project_id")
        if project_id:
            session.cache.invalidate(history_scope(str(project_id)))
        if on_task_change is not None:
            on_task_change(event)

    def on_projects(event: ChangeEvent) -> None:
        if session.cache.closed or event.row.get("user_id") != session.actor_id:
            return
        session.cache.invalidate(PROJECTS_SCOPE)

    unsubscribers = [
        feed.subscribe(TASKS_TABLE, on_tasks),
        feed.subscribe(PROJECTS_TABLE, on_projects),
    ]
    logger.debug("Watching store changes for actor=%s", session.actor_id)

    def stop() -> None:
        for unsubscribe in unsubscribers:
            unsubscribe()

    return stop
