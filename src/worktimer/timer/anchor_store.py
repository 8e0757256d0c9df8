# src/worktimer/timer/anchor_store.py

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from ..core.ports import KeyValueSlots
from .task_models import Anchor

logger = logging.getLogger(__name__)

RUNNING_START_KEY = "active_task_running_start"
ACTIVE_TASK_KEY = "active_task"
ACTIVE_PROJECT_ID_KEY = "active_project_id"


def _load_json_object(raw: str | None) -> dict | None:
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


class AnchorStore:
    """
    Single slot remembering when the current running slice began.

    The slot names the task it belongs to; reading it for any other task returns
    nothing. Losing the slot only costs precision: the elapsed model falls back to
    the task's durable timestamps.
    """

    def __init__(self, slots: KeyValueSlots) -> None:
        self._slots = slots

    def write(self, task_id: str, running_start_ms: int) -> None:
        self._slots.set(
            RUNNING_START_KEY,
            json.dumps({"taskId": task_id, "runningStartMs": int(running_start_ms)}),
        )

    def read(self, task_id: str) -> int | None:
        parsed = _load_json_object(self._slots.get(RUNNING_START_KEY))
        if parsed is None or parsed.get("taskId") != task_id:
            return None
        value = parsed.get("runningStartMs")
        # bool is an int subclass; a stored true/false is garbage, not a timestamp.
        if not isinstance(value, int) or isinstance(value, bool):
            return None
        return value

    def current(self) -> Anchor | None:
        parsed = _load_json_object(self._slots.get(RUNNING_START_KEY))
        if parsed is None:
            return None
        task_id = parsed.get("taskId")
        if not isinstance(task_id, str):
            return None
        value = self.read(task_id)
        return Anchor(task_id=task_id, running_start_ms=value) if value is not None else None

    def clear(self) -> None:
        self._slots.remove(RUNNING_START_KEY)


@dataclass(slots=True, frozen=True)
class ActiveTaskRef:
    project_id: str
    task_id: str


class ActiveTaskPointer:
    """Remembers which task (and project) the user is working on across restarts."""

    def __init__(self, slots: KeyValueSlots) -> None:
        self._slots = slots

    def read(self) -> ActiveTaskRef | None:
        parsed = _load_json_object(self._slots.get(ACTIVE_TASK_KEY))
        if parsed is None:
            return None
        project_id = parsed.get("projectId")
        task_id = parsed.get("taskId")
        if not project_id or not task_id:
            return None
        return ActiveTaskRef(project_id=str(project_id), task_id=str(task_id))

    def write(self, project_id: str, task_id: str) -> None:
        self._slots.set(ACTIVE_TASK_KEY, json.dumps({"projectId": project_id, "taskId": task_id}))

    def clear(self) -> None:
        self._slots.remove(ACTIVE_TASK_KEY)

    def read_project_id(self) -> str | None:
        return self._slots.get(ACTIVE_PROJECT_ID_KEY) or None

    def write_project_id(self, project_id: str | None) -> None:
        if project_id:
            self._slots.set(ACTIVE_PROJECT_ID_KEY, project_id)
        else:
            self._slots.remove(ACTIVE_PROJECT_ID_KEY)

    def forget_all(self) -> None:
        """Sign-out: drop every local pointer including the running anchor."""
        self._slots.remove(ACTIVE_TASK_KEY)
        self._slots.remove(ACTIVE_PROJECT_ID_KEY)
        self._slots.remove(RUNNING_START_KEY)
