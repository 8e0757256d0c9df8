# tests/test_elapsed.py

from __future__ import annotations

from worktimer.core.clock import format_duration, ms_to_iso, parse_timestamp_ms
from worktimer.timer.elapsed import (
    display_duration_ms,
    paused_total_ms,
    running_start_ms,
    slice_ms,
)
from worktimer.timer.task_models import Task, TaskStatus

from .fakes import T0_MS


def _task(status: TaskStatus, **kw) -> Task:
    base = dict(
        id="t1",
        project_id="p1",
        user_id="alice",
        title="write report",
        status=status,
        started_at=ms_to_iso(T0_MS),
        updated_at=ms_to_iso(T0_MS),
    )
    base.update(kw)
    return Task(**base)


def test_timestamp_roundtrip_and_garbage() -> None:
    assert parse_timestamp_ms(ms_to_iso(T0_MS + 1234)) == T0_MS + 1234
    assert parse_timestamp_ms("2024-01-01T00:00:00+02:00") == T0_MS - 2 * 3_600_000
    assert parse_timestamp_ms("not a date") is None
    assert parse_timestamp_ms("") is None
    assert parse_timestamp_ms(None) is None
    assert parse_timestamp_ms(12345) is None


def test_running_start_prefers_anchor_then_updated_then_started() -> None:
    now = T0_MS + 60_000
    t = _task(TaskStatus.RUNNING, updated_at=ms_to_iso(T0_MS + 10_000))

    assert running_start_ms(t, now, anchor_ms=T0_MS + 20_000) == T0_MS + 20_000
    assert running_start_ms(t, now) == T0_MS + 10_000

    t = _task(TaskStatus.RUNNING, updated_at="garbage")
    assert running_start_ms(t, now) == T0_MS

    t = _task(TaskStatus.RUNNING, updated_at=None, started_at=None)
    assert running_start_ms(t, now) == now


def test_display_running_adds_current_slice() -> None:
    t = _task(TaskStatus.RUNNING, accumulated_ms=5_000)
    assert display_duration_ms(t, T0_MS + 3_000) == 8_000
    assert display_duration_ms(t, T0_MS + 3_000, anchor_ms=T0_MS + 1_000) == 7_000


def test_display_paused_and_terminal_ignore_clock() -> None:
    paused = _task(TaskStatus.PAUSED, accumulated_ms=5_000)
    assert display_duration_ms(paused, T0_MS + 99_000) == 5_000

    finished = _task(TaskStatus.FINISHED, accumulated_ms=7_000, duration_ms=7_000)
    assert display_duration_ms(finished, T0_MS + 99_000) == 7_000

    canceled = _task(TaskStatus.CANCELED, accumulated_ms=0, duration_ms=0)
    assert display_duration_ms(canceled, T0_MS + 99_000) == 0


def test_clock_skew_never_goes_negative() -> None:
    assert slice_ms(T0_MS + 5_000, T0_MS) == 0

    # updated_at in the future relative to this machine
    t = _task(TaskStatus.RUNNING, accumulated_ms=1_000, updated_at=ms_to_iso(T0_MS + 10_000))
    assert display_duration_ms(t, T0_MS) == 1_000


def test_paused_total_includes_pause_in_progress() -> None:
    t = _task(TaskStatus.PAUSED, paused_ms=2_000, paused_at=ms_to_iso(T0_MS + 1_000))
    assert paused_total_ms(t, T0_MS + 4_000) == 5_000

    running = _task(TaskStatus.RUNNING, paused_ms=2_000)
    assert paused_total_ms(running, T0_MS + 4_000) == 2_000


def test_format_duration() -> None:
    assert format_duration(0) == "00:00:00"
    assert format_duration(3_723_999) == "01:02:03"
    assert format_duration(-5) == "00:00:00"
