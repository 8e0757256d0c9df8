# src/worktimer/core/errors.py

"""
Store error taxonomy.

- TransientStoreError: network/store unavailable. Reported to the user, optimistic
  local state stays, nobody retries.
- PreconditionError: schema or precondition failure (missing table, row already
  terminal). Terminal for this session: the affected feature area switches itself off.

Malformed timestamps are not errors at all; see worktimer.timer.elapsed.
"""

from __future__ import annotations


class StoreError(Exception):
    """Base class for everything the remote store can raise."""


class TransientStoreError(StoreError):
    pass


class PreconditionError(StoreError):
    pass


class MissingTableError(PreconditionError):
    def __init__(self, table: str, message: str | None = None) -> None:
        self.table = table
        super().__init__(message or f'relation "{table}" does not exist')


class TaskAlreadyTerminalError(PreconditionError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"task {task_id} is already finished or canceled")


class ActiveTaskExistsError(PreconditionError):
    """A project already has a running/paused task for this user."""

    def __init__(self, project_id: str, task_id: str) -> None:
        self.project_id = project_id
        self.task_id = task_id
        super().__init__("Finish or cancel the active task before starting a new one.")


def is_missing_table_message(message: str) -> bool:
    lower = message.lower()
    return (
        "schema cache" in lower
        or "does not exist" in lower
        or "no such table" in lower
    )


def friendly_store_error(exc: BaseException) -> str:
    """User-facing text for a store failure."""
    message = str(exc) or exc.__class__.__name__
    if isinstance(exc, MissingTableError) or is_missing_table_message(message):
        return "Database table is missing. Run the store migrations first."
    if isinstance(exc, TaskAlreadyTerminalError):
        return "This task is already finished or canceled."
    if isinstance(exc, TransientStoreError) or "failed to fetch" in message.lower():
        return "Network error. Please check your connection."
    return message
