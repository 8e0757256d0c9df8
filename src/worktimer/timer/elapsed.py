# src/worktimer/timer/elapsed.py

from __future__ import annotations

"""
Elapsed time model.

Pure functions: a Task snapshot + "now" (+ an optional local anchor) -> milliseconds
to display. Nothing here persists anything or raises on bad timestamps; a timestamp
that does not parse is simply skipped in favour of the next fallback.
"""

from ..core.clock import parse_timestamp_ms
from .task_models import Task, TaskStatus


def first_timestamp_ms(*candidates: object, now_ms: int) -> int:
    """Return the first candidate that parses, or now_ms when none do."""
    for candidate in candidates:
        ms = parse_timestamp_ms(candidate)
        if ms is not None:
            return ms
    return now_ms


def running_start_ms(task: Task, now_ms: int, anchor_ms: int | None = None) -> int:
    """
    When did the current running slice begin?

    Anchor first (it is only passed when it names this task), then updated_at,
    then started_at, then now (adds zero time rather than failing).
    """
    if anchor_ms is not None:
        return int(anchor_ms)
    return first_timestamp_ms(task.updated_at, task.started_at, now_ms=now_ms)


def paused_at_ms(task: Task, now_ms: int, anchor_ms: int | None = None) -> int:
    """When did the current pause begin? Same fallback chain, paused_at first."""
    if anchor_ms is not None:
        return int(anchor_ms)
    return first_timestamp_ms(task.paused_at, task.updated_at, task.started_at, now_ms=now_ms)


def slice_ms(start_ms: int, now_ms: int) -> int:
    """Length of a slice; clock skew or a rewound clock yields 0, never negative."""
    return max(0, int(now_ms) - int(start_ms))


def display_duration_ms(task: Task, now_ms: int, anchor_ms: int | None = None) -> int:
    if task.status == TaskStatus.RUNNING:
        start = running_start_ms(task, now_ms, anchor_ms)
        return task.accumulated_ms + slice_ms(start, now_ms)
    if task.status == TaskStatus.PAUSED:
        return task.accumulated_ms
    return task.duration_ms


def paused_total_ms(task: Task, now_ms: int, anchor_ms: int | None = None) -> int:
    """Cumulative paused time, including the pause in progress (reporting only)."""
    base = max(0, task.paused_ms)
    if task.status != TaskStatus.PAUSED:
        return base
    return base + slice_ms(paused_at_ms(task, now_ms, anchor_ms), now_ms)
