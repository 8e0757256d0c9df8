# tests/test_bootstrap.py

from __future__ import annotations

from pathlib import Path

import pytest

from worktimer.cli.bootstrap import create_initial_state
from worktimer.cli.commands import registry
from worktimer.config import Settings
from worktimer.store.local_slots import JsonFileSlots
from worktimer.store.sqlite_store import SqliteRemoteStore
from worktimer.timer.task_models import TaskStatus


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("WORKTIMER_USER_ID", "  carol ")
    monkeypatch.setenv("WORKTIMER_TICK_INTERVAL_MS", "5")
    monkeypatch.setenv("WORKTIMER_HISTORY_PAGE_SIZE", "not-a-number")
    monkeypatch.setenv("WORKTIMER_FINALIZE_ON_EXIT", "yes")
    monkeypatch.setenv("WORKTIMER_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("WORKTIMER_STORE_DB_PATH", raising=False)

    s = Settings.from_env()

    assert s.user_id == "carol"
    assert s.tick_interval_ms == 50
    assert s.history_page_size == 20
    assert s.finalize_on_exit is True
    assert s.store_db_path == tmp_path / "store.sqlite3"


@pytest.mark.asyncio
async def test_initial_state_runs_on_sqlite(settings) -> None:
    state = create_initial_state(settings=settings)
    assert isinstance(state.store, SqliteRemoteStore)
    assert isinstance(state.slots, JsonFileSlots)

    await registry.handle(state, "/signin alice")
    await registry.handle(state, "/project new Work")
    reply = await registry.handle(state, "/start Real store | on disk")
    assert reply is not None and reply.startswith("Started:")

    ws = state.workspace
    assert ws.timer is not None
    assert await ws.pause() is not None
    assert ws.timer.status == TaskStatus.PAUSED
    finished = await ws.finish()
    assert finished is not None and finished.status == TaskStatus.FINISHED

    page = await ws.history()
    assert page is not None and page.total == 1
    await ws.close()
    assert settings.local_state_path.exists()
