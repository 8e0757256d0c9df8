# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from worktimer.core.state import AppState
from worktimer.core.workspace import Workspace
from worktimer.store.local_slots import MemorySlots
from worktimer.timer.anchor_store import AnchorStore
from worktimer.timer.sync_gateway import SyncGateway

from .fakes import FakeRemoteStore, ManualClock


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="worktimer",
        user_id="alice",
        data_dir=tmp_path,
        store_db_path=tmp_path / "store.sqlite3",
        local_state_path=tmp_path / "local_state.json",
        tick_interval_ms=50,
        history_page_size=5,
        console_enabled=False,
        finalize_on_exit=False,
    )


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def store(clock: ManualClock) -> FakeRemoteStore:
    return FakeRemoteStore(clock)


@pytest.fixture()
def slots() -> MemorySlots:
    return MemorySlots()


@pytest.fixture()
def anchors(slots: MemorySlots) -> AnchorStore:
    return AnchorStore(slots)


@pytest.fixture()
def gateway(store: FakeRemoteStore) -> SyncGateway:
    return SyncGateway(store)


@pytest.fixture()
def state(settings: SimpleNamespace, store: FakeRemoteStore, slots: MemorySlots, clock: ManualClock) -> AppState:
    """
    AppState wired with deterministic fakes.

    NOTE: the store is the in-memory fake; SqliteRemoteStore has its own tests.
    """
    workspace = Workspace(
        store=store,
        slots=slots,
        clock=clock,
        feed=store,
        page_size=settings.history_page_size,
        tick_interval_ms=settings.tick_interval_ms,
    )
    return AppState(settings=settings, store=store, slots=slots, clock=clock, workspace=workspace)
