# src/worktimer/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (store/slots/clock/workspace).
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from ..config import get_settings
from ..core.clock import SystemClock
from ..core.state import AppState
from ..core.workspace import Workspace
from ..store.local_slots import JsonFileSlots
from ..store.sqlite_store import SqliteRemoteStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.store_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.local_state_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None, render: Callable[[int], None] | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    clock = SystemClock()
    store = SqliteRemoteStore(settings.store_db_path, clock=clock)
    slots = JsonFileSlots(settings.local_state_path)

    workspace = Workspace(
        store=store,
        slots=slots,
        clock=clock,
        feed=store,
        page_size=settings.history_page_size,
        tick_interval_ms=settings.tick_interval_ms,
        render=render,
    )
    logger.debug("State created store=%s slots=%s", settings.store_db_path, settings.local_state_path)

    return AppState(
        settings=settings,
        store=store,
        slots=slots,
        clock=clock,
        workspace=workspace,
    )
