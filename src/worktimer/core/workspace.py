# src/worktimer/core/workspace.py

"""
Workspace: the controller behind the console (or any other) control surface.

It owns the per-actor session, the selected project, the active task's timer and
its display ticker, and routes user events to the timer state machine. UI code
talks to this object only.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from ..cache.active_task import ActiveTaskReconciler
from ..cache.change_watch import watch_session
from ..cache.history import DateRange, HistoryLoader, HistoryPage, history_scope
from ..timer import task_api
from ..timer.anchor_store import ActiveTaskPointer, AnchorStore
from ..timer.finalize import finalize_payload
from ..timer.state_machine import TaskTimer
from ..timer.sync_gateway import SyncGateway
from ..timer.task_models import Project, Task
from ..timer.ticker import Ticker
from .errors import PreconditionError
from .ports import ChangeEvent, ChangeFeed, Clock, KeyValueSlots, RemoteStore
from .session import ActorSession

logger = logging.getLogger(__name__)


class Workspace:
    def __init__(
            self,
            *,
            store: RemoteStore,
            slots: KeyValueSlots,
            clock: Clock,
            feed: ChangeFeed | None = None,
            page_size: int = 20,
            tick_interval_ms: int = 250,
            render: Callable[[int], None] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._feed = feed
        self._page_size = page_size
        self._render = render

        self.anchors = AnchorStore(slots)
        self.pointer = ActiveTaskPointer(slots)
        self._gateway = SyncGateway(store)
        self._ticker = Ticker(self._on_tick, interval_seconds=tick_interval_ms / 1000)

        self.session: ActorSession | None = None
        self._unwatch: Callable[[], None] | None = None
        self._history: HistoryLoader | None = None
        self._reconciler: ActiveTaskReconciler | None = None
        self._background: set[asyncio.Task[None]] = set()

        self.projects: list[Project] = []
        self.project_id: str | None = None
        self.timer: TaskTimer | None = None
        self.last_display_ms = 0

    # ---- session lifecycle ----

    def _require_session(self) -> ActorSession:
        if self.session is None:
            raise PreconditionError("Not signed in.")
        return self.session

    def _require_history(self) -> HistoryLoader:
        if self._history is None:
            raise PreconditionError("Not signed in.")
        return self._history

    @property
    def actor_id(self) -> str | None:
        return self.session.actor_id if self.session is not None else None

    async def sign_in(self, actor_id: str) -> None:
        actor_id = (actor_id or "").strip()
        if not actor_id:
            raise ValueError("actor id is required")
        if self.session is not None:
            if self.session.actor_id == actor_id:
                return
            await self.sign_out()

        session = ActorSession(actor_id)
        self.session = session
        self._history = HistoryLoader(self._store, session, page_size=self._page_size)
        self._reconciler = ActiveTaskReconciler(self._store, session, self.pointer, self.anchors)
        if self._feed is not None:
            self._unwatch = watch_session(self._feed, session, on_task_change=self._on_task_change)

        await self.refresh_projects()

    async def sign_out(self) -> None:
        self._detach_timer()
        self.pointer.forget_all()
        if self._unwatch is not None:
            self._unwatch()
            self._unwatch = None
        if self.session is not None:
            self.session.close()
        self.session = None
        self._history = None
        self._reconciler = None
        self.projects = []
        self.project_id = None

    async def close(self) -> None:
        """Shutdown: stop ticking and background refreshes; pointers stay for next start."""
        await self._ticker.aclose()
        pending = list(self._background)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        if self._unwatch is not None:
            self._unwatch()
            self._unwatch = None

    # ---- projects / scope ----

    def _choose_project(self, projects: list[Project]) -> str | None:
        ids = {p.id for p in projects}
        ref = self.pointer.read()
        if ref is not None and ref.project_id in ids:
            return ref.project_id
        stored = self.pointer.read_project_id()
        if stored in ids:
            return stored
        return projects[0].id if projects else None

    async def refresh_projects(self) -> list[Project]:
        session = self._require_session()
        projects = await task_api.list_projects(self._store, session)
        if projects is None:
            return self.projects
        self.projects = projects
        chosen = self._choose_project(projects)
        self.pointer.write_project_id(chosen)
        if chosen != self.project_id:
            self.project_id = chosen
            await self.reload_active_task()
        return projects

    async def create_project(self, name: str) -> Project:
        session = self._require_session()
        project = await task_api.create_project(self._store, session, name)
        if all(p.id != project.id for p in self.projects):
            self.projects = [*self.projects, project]
        await self.select_project(project.id)
        return project

    async def select_project(self, project_id: str) -> bool:
        """Switch scope. Refused while a task of another project is active."""
        if project_id == self.project_id:
            return True
        if self.timer is not None and self.timer.task.project_id != project_id:
            logger.info("Project switch refused, task %s is active", self.timer.task_id)
            return False
        if all(p.id != project_id for p in self.projects):
            raise ValueError(f"unknown project {project_id}")
        self._detach_timer()
        self.anchors.clear()
        self.project_id = project_id
        self.pointer.write_project_id(project_id)
        await self.reload_active_task()
        return True

    # ---- active task ----

    def _on_tick(self, display_ms: int) -> None:
        self.last_display_ms = display_ms
        if self._render is not None:
            self._render(display_ms)

    def _attach(self, task: Task) -> TaskTimer:
        if self.timer is not None and self.timer.task_id == task.id:
            self.timer.adopt(task)
            return self.timer
        self._detach_timer()
        self.timer = TaskTimer(
            task,
            clock=self._clock,
            anchors=self.anchors,
            gateway=self._gateway,
            on_change=self._on_timer_change,
        )
        self.last_display_ms = self.timer.display_ms()
        self._ticker.start(self.timer)
        return self.timer

    def _detach_timer(self) -> None:
        self._ticker.stop()
        self.timer = None

    def _on_timer_change(self, task: Task) -> None:
        if self.session is not None:
            self.session.cache.invalidate(history_scope(task.project_id))
        if self.timer is None or self.timer.task_id != task.id:
            return
        self.last_display_ms = self.timer.display_ms()
        if task.is_terminal:
            self.pointer.clear()
            self._detach_timer()

    def _on_task_change(self, event: ChangeEvent) -> None:
        row = event.row
        if row.get("project_id") != self.project_id:
            return
        timer = self.timer
        # Echo of our own write: the gateway already hands that row to the timer.
        if timer is not None and row.get("id") == timer.task_id and row.get("status") == timer.status.value:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.reload_active_task())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def reload_active_task(self) -> Task | None:
        """Re-read the remembered active task for the current project."""
        if self._reconciler is None:
            return None
        before = self.timer
        version = before.version if before is not None else None
        lookup = await self._reconciler.reconcile(self.project_id)
        current = self.timer
        if lookup.skipped:
            return current.task if current is not None else None

        task = lookup.value
        # The pointer, the scope or the register may have moved while the read was in flight.
        ref = self.pointer.read()
        if task is None:
            if current is not None and ref is not None and ref.task_id == current.task_id:
                return current.task
            self._detach_timer()
            return None
        if ref is None or ref.task_id != task.id or task.project_id != self.project_id:
            logger.debug("Dropping stale active task row %s", task.id)
            return current.task if current is not None else None
        if current is not None and current.task_id == task.id:
            if current is not before or current.version != version or current.syncing:
                # A local transition owns the register; its confirmation is newer than this read.
                return current.task
        return self._attach(task).task

    async def start_task(self, title: str, notes: str | None = None) -> Task:
        session = self._require_session()
        if not self.project_id:
            raise PreconditionError("Create and select a project to start tracking tasks.")
        task = await task_api.start_task(
            self._store,
            user_id=session.actor_id,
            project_id=self.project_id,
            title=title,
            notes=notes,
            clock=self._clock,
        )
        self.pointer.write(task.project_id, task.id)
        self._attach(task)
        session.cache.invalidate(history_scope(task.project_id))
        return task

    async def pause(self) -> Task | None:
        return await self.timer.pause() if self.timer is not None else None

    async def resume(self) -> Task | None:
        return await self.timer.resume() if self.timer is not None else None

    async def finish(self) -> Task | None:
        return await self.timer.finish() if self.timer is not None else None

    async def cancel(self) -> Task | None:
        return await self.timer.cancel() if self.timer is not None else None

    async def finalize_active(self) -> bool:
        """Session teardown: finish the active task with the locally displayed total."""
        timer = self.timer
        if timer is None:
            return False
        payload = timer.unload_payload()
        self._detach_timer()
        if payload is None:
            return False
        finalized = await finalize_payload(self._store, payload, clock=self._clock)
        self.pointer.clear()
        self.anchors.clear()
        return finalized

    # ---- history ----

    async def history(self, page: int = 0, date_range: DateRange | None = None) -> HistoryPage | None:
        lookup = await self._require_history().load(self.project_id, page, date_range)
        return lookup.value

    async def delete_task(self, task_id: str, *, page: int = 0, date_range: DateRange | None = None) -> bool:
        session = self._require_session()
        loader = self._require_history()
        task = await task_api.get_task(self._store, user_id=session.actor_id, task_id=task_id)
        if task is None:
            return False
        return await loader.delete(task, page=page, date_range=date_range)

    async def rename_task(self, task_id: str, title: str, notes: str | None = None) -> Task | None:
        session = self._require_session()
        task = await task_api.rename_task(
            self._store, user_id=session.actor_id, task_id=task_id, title=title, notes=notes
        )
        if task is not None:
            session.cache.invalidate(history_scope(task.project_id))
            if self.timer is not None and self.timer.task_id == task.id:
                self.timer.adopt(task)
        return task
