# tests/test_sqlite_store.py

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path

import pytest

from worktimer.core.clock import ms_to_iso
from worktimer.core.errors import MissingTableError, PreconditionError
from worktimer.core.ports import ChangeEvent
from worktimer.store.filters import Eq, In, Order, Range
from worktimer.store.local_slots import MemorySlots
from worktimer.store.sqlite_store import SqliteRemoteStore
from worktimer.timer.anchor_store import AnchorStore
from worktimer.timer.state_machine import TaskTimer
from worktimer.timer.sync_gateway import SyncGateway
from worktimer.timer.task_models import Task, TaskStatus

from .fakes import T0_MS, ManualClock


@pytest.fixture()
def db(tmp_path: Path) -> SqliteRemoteStore:
    return SqliteRemoteStore(tmp_path / "store.sqlite3", clock=ManualClock())


@pytest.mark.asyncio
async def test_insert_fills_id_and_timestamps(db: SqliteRemoteStore) -> None:
    row = await db.insert("projects", {"user_id": "alice", "name": "Work"})
    assert row["id"]
    assert row["created_at"] is not None
    assert row["name"] == "Work"

    task = await db.insert("tasks", {"project_id": row["id"], "user_id": "alice", "title": "t"})
    assert task["status"] == "running"
    assert task["accumulated_ms"] == 0
    assert task["updated_at"] == task["created_at"]


@pytest.mark.asyncio
async def test_read_filters_orders_and_counts(db: SqliteRemoteStore) -> None:
    for i in range(5):
        await db.insert(
            "tasks",
            {"project_id": "p1", "user_id": "alice", "title": f"t{i}", "status": "finished",
             "ended_at": f"2024-01-0{i + 1}T00:00:00.000+00:00"},
        )
    await db.insert("tasks", {"project_id": "p1", "user_id": "alice", "title": "live", "status": "running"})
    await db.insert("tasks", {"project_id": "p1", "user_id": "bob", "title": "other", "status": "finished"})

    result = await db.read(
        "tasks",
        [Eq("user_id", "alice"), Eq("project_id", "p1")],
        order=Order("ended_at", ascending=False, nulls_first=True),
        range_=Range.page(0, 3),
    )
    assert result.count == 6
    assert [r["title"] for r in result.rows] == ["live", "t4", "t3"]

    page2 = await db.read(
        "tasks",
        [Eq("user_id", "alice"), Eq("project_id", "p1")],
        order=Order("ended_at", ascending=False, nulls_first=True),
        range_=Range.page(1, 3),
    )
    assert [r["title"] for r in page2.rows] == ["t2", "t1", "t0"]


@pytest.mark.asyncio
async def test_conditional_update_and_notifications(db: SqliteRemoteStore) -> None:
    events: list[ChangeEvent] = []
    unsubscribe = db.subscribe("tasks", events.append)

    task = await db.insert("tasks", {"project_id": "p1", "user_id": "alice", "title": "t"})
    active = In.of("status", ["running", "paused"])

    updated = await db.update("tasks", [Eq("id", task["id"]), active], {"status": "finished"})
    assert updated is not None and updated["status"] == "finished"

    again = await db.update("tasks", [Eq("id", task["id"]), active], {"status": "running"})
    assert again is None

    assert [e.kind for e in events] == ["insert", "update"]
    unsubscribe()
    await db.delete("tasks", [Eq("id", task["id"])])
    assert len(events) == 2


@pytest.mark.asyncio
async def test_update_stamps_updated_at(tmp_path: Path) -> None:
    clock = ManualClock()
    db = SqliteRemoteStore(tmp_path / "s.sqlite3", clock=clock)
    task = await db.insert("tasks", {"project_id": "p1", "user_id": "alice", "title": "t"})

    clock.advance(5000)
    updated = await db.update("tasks", [Eq("id", task["id"])], {"title": "t2"})

    assert updated is not None
    assert updated["updated_at"] > task["updated_at"]
    assert updated["updated_at"].startswith("2024-01-01T00:00:05")
    assert clock.now == T0_MS + 5000


@pytest.mark.asyncio
async def test_update_and_delete_require_identity(db: SqliteRemoteStore) -> None:
    with pytest.raises(ValueError):
        await db.update("tasks", [Eq("user_id", "alice")], {"title": "x"})
    with pytest.raises(ValueError):
        await db.delete("tasks", [Eq("user_id", "alice")])


@pytest.mark.asyncio
async def test_delete_returns_whether_anything_matched(db: SqliteRemoteStore) -> None:
    task = await db.insert("tasks", {"project_id": "p1", "user_id": "alice", "title": "t"})
    assert await db.delete("tasks", [Eq("id", task["id"])])
    assert not await db.delete("tasks", [Eq("id", task["id"])])


@pytest.mark.asyncio
async def test_unknown_table_and_column(tmp_path: Path) -> None:
    db = SqliteRemoteStore(tmp_path / "s.sqlite3", tables=["projects"])

    with pytest.raises(MissingTableError):
        await db.read("tasks", [Eq("user_id", "alice")])
    with pytest.raises(PreconditionError):
        await db.read("projects", [Eq("colour", "blue")])


@pytest.mark.asyncio
async def test_dropped_table_maps_to_missing_table(tmp_path: Path) -> None:
    path = tmp_path / "s.sqlite3"
    db = SqliteRemoteStore(path)
    conn = sqlite3.connect(path)
    conn.execute("DROP TABLE tasks")
    conn.commit()
    conn.close()

    with pytest.raises(MissingTableError):
        await db.read("tasks", [Eq("user_id", "alice")])


def test_schema_migration_adds_missing_columns(tmp_path: Path) -> None:
    path = tmp_path / "old.sqlite3"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE tasks (id TEXT PRIMARY KEY, title TEXT)")
    conn.commit()
    conn.close()

    SqliteRemoteStore(path)

    conn = sqlite3.connect(path)
    cols = {r[1] for r in conn.execute("PRAGMA table_info(tasks)")}
    conn.close()
    assert {"paused_ms", "pause_count", "paused_at", "accumulated_ms"} <= cols


@pytest.mark.asyncio
async def test_overlapping_transitions_commit_in_issue_order(db: SqliteRemoteStore) -> None:
    clock = ManualClock()
    for _ in range(20):
        row = await db.insert(
            "tasks",
            {"project_id": "p1", "user_id": "alice", "title": "t", "started_at": ms_to_iso(T0_MS)},
        )
        timer = TaskTimer(
            Task.from_row(row), clock=clock, anchors=AnchorStore(MemorySlots()), gateway=SyncGateway(db)
        )
        clock.advance(1000)

        await asyncio.gather(timer.pause(), timer.resume())

        stored = (await db.read("tasks", [Eq("id", row["id"])])).rows[0]
        assert stored["status"] == "running"
        assert timer.status == TaskStatus.RUNNING
        assert stored["pause_count"] == 1
