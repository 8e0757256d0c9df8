# src/worktimer/timer/task_api.py

from __future__ import annotations

import logging

from ..core.clock import ms_to_iso
from ..core.errors import ActiveTaskExistsError, MissingTableError
from ..core.ports import Clock, RemoteStore
from ..core.session import ActorSession
from ..store.filters import Eq, In, Order
from .sync_gateway import TASKS_TABLE
from .task_models import ACTIVE_STATUSES, Project, Task, TaskStatus

logger = logging.getLogger(__name__)

PROJECTS_TABLE = "projects"
PROJECTS_SCOPE = "projects"
PROJECTS_FEATURE = "projects"


async def list_projects(store: RemoteStore, session: ActorSession) -> list[Project] | None:
    """
    Projects of the session's actor, oldest first, memoized per actor.

    Returns None when an identical lookup is already in flight (the caller that
    started it publishes the result).
    """
    if not session.is_available(PROJECTS_FEATURE):
        return []

    actor = session.actor_id

    async def query() -> list[Project]:
        result = await store.read(
            PROJECTS_TABLE,
            [Eq("user_id", actor)],
            order=Order("created_at", ascending=True),
        )
        return [Project.from_row(r) for r in result.rows]

    try:
        lookup = await session.cache.fetch(session.cache.key(PROJECTS_SCOPE), query)
    except MissingTableError:
        session.disable(PROJECTS_FEATURE)
        raise
    if lookup.skipped:
        return None
    return list(lookup.value or [])


async def create_project(store: RemoteStore, session: ActorSession, name: str) -> Project:
    name = (name or "").strip()
    if not name:
        raise ValueError("Project name is required.")

    try:
        row = await store.insert(PROJECTS_TABLE, {"name": name, "user_id": session.actor_id})
    except MissingTableError:
        session.disable(PROJECTS_FEATURE)
        raise
    project = Project.from_row(row)

    # Append to the cached list instead of re-reading it.
    key = session.cache.key(PROJECTS_SCOPE)
    cached = session.cache.get(key)
    if isinstance(cached, list):
        session.cache.put(key, [*cached, project])
    logger.info("Project created id=%s name=%s", project.id, project.name)
    return project


async def find_active_task(store: RemoteStore, *, user_id: str, project_id: str) -> Task | None:
    result = await store.read(
        TASKS_TABLE,
        [Eq("project_id", project_id), Eq("user_id", user_id), In.of("status", ACTIVE_STATUSES)],
        order=Order("started_at", ascending=False),
    )
    return Task.from_row(result.rows[0]) if result.rows else None


async def get_task(store: RemoteStore, *, user_id: str, task_id: str) -> Task | None:
    result = await store.read(TASKS_TABLE, [Eq("id", task_id), Eq("user_id", user_id)])
    return Task.from_row(result.rows[0]) if result.rows else None


async def start_task(
    store: RemoteStore,
    *,
    user_id: str,
    project_id: str,
    title: str,
    notes: str | None = None,
    clock: Clock,
) -> Task:
    """
    Create a running task. One running/paused task per (user, project): the store
    does not enforce it, so it is checked here before inserting.
    """
    title = (title or "").strip()
    if not title:
        raise ValueError("title is required")
    if not project_id:
        raise ValueError("project_id is required")

    existing = await find_active_task(store, user_id=user_id, project_id=project_id)
    if existing is not None:
        raise ActiveTaskExistsError(project_id, existing.id)

    row = await store.insert(
        TASKS_TABLE,
        {
            "project_id": project_id,
            "user_id": user_id,
            "title": title,
            "notes": (notes or "").strip() or None,
            "status": TaskStatus.RUNNING.value,
            "started_at": ms_to_iso(clock.now_ms()),
            "accumulated_ms": 0,
            "duration_ms": 0,
            "pause_count": 0,
            "paused_ms": 0,
        },
    )
    task = Task.from_row(row)
    logger.info("Task started id=%s project=%s title=%s", task.id, project_id, task.title)
    return task


async def rename_task(
    store: RemoteStore,
    *,
    user_id: str,
    task_id: str,
    title: str,
    notes: str | None = None,
) -> Task | None:
    """Edit title/notes only. Timing fields belong to the state machine."""
    title = (title or "").strip()
    if not title:
        raise ValueError("title is required")
    patch: dict[str, str | None] = {"title": title}
    if notes is not None:
        patch["notes"] = notes.strip() or None
    row = await store.update(TASKS_TABLE, [Eq("id", task_id), Eq("user_id", user_id)], patch)
    return Task.from_row(row) if row is not None else None
