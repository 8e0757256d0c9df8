# src/worktimer/timer/task_models.py

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Notes:
    - only running/paused tasks accept transitions
    - finished and canceled are terminal; the row is frozen afterwards
    """

    RUNNING = "running"
    PAUSED = "paused"
    FINISHED = "finished"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            raise ValueError("task row has no status")
        return cls(str(raw).strip().lower())


ACTIVE_STATUSES: tuple[TaskStatus, ...] = (TaskStatus.RUNNING, TaskStatus.PAUSED)
TERMINAL_STATUSES: tuple[TaskStatus, ...] = (TaskStatus.FINISHED, TaskStatus.CANCELED)


def _non_negative_int(raw: Any) -> int:
    try:
        return max(0, int(raw or 0))
    except (TypeError, ValueError):
        return 0


@dataclass(slots=True, frozen=True)
class Task:
    id: str
    project_id: str
    user_id: str
    title: str
    status: TaskStatus
    started_at: str | None

    accumulated_ms: int = 0
    duration_ms: int = 0
    pause_count: int = 0
    paused_ms: int = 0

    notes: str | None = None
    ended_at: str | None = None
    paused_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Task:
        return cls(
            id=str(row["id"]),
            project_id=str(row.get("project_id") or ""),
            user_id=str(row.get("user_id") or ""),
            title=str(row.get("title") or ""),
            notes=row.get("notes"),
            status=TaskStatus.from_db(row.get("status")),
            started_at=row.get("started_at"),
            ended_at=row.get("ended_at"),
            accumulated_ms=_non_negative_int(row.get("accumulated_ms")),
            duration_ms=_non_negative_int(row.get("duration_ms")),
            pause_count=_non_negative_int(row.get("pause_count")),
            paused_ms=_non_negative_int(row.get("paused_ms")),
            paused_at=row.get("paused_at"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def to_row(self) -> dict[str, Any]:
        row = asdict(self)
        row["status"] = self.status.value
        return row


@dataclass(slots=True, frozen=True)
class Project:
    id: str
    user_id: str
    name: str
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Project:
        return cls(
            id=str(row["id"]),
            user_id=str(row.get("user_id") or ""),
            name=str(row.get("name") or ""),
            created_at=row.get("created_at"),
        )


@dataclass(slots=True, frozen=True)
class Anchor:
    """Local record of when the current running slice of `task_id` began."""

    task_id: str
    running_start_ms: int
