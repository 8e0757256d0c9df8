# src/worktimer/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from .ports import Clock, KeyValueSlots, RemoteStore
from .workspace import Workspace


@dataclass
class AppState:
    # Settings live on the state so commands and connectors can read them.
    settings: object

    store: RemoteStore
    slots: KeyValueSlots
    clock: Clock
    workspace: Workspace
