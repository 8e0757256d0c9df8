# src/worktimer/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The timer engine depends on Protocols instead of concrete implementations.
This keeps the remote store and the local slot swappable and makes testing easier.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

Row = dict[str, Any]
# Plain column -> value mapping, exactly as the store returns it.


class Clock(Protocol):
    """Wall-clock source in integer milliseconds since the epoch."""
    def now_ms(self) -> int: ...


@dataclass(slots=True, frozen=True)
class ReadResult:
    rows: list[Row] = field(default_factory=list)
    count: int = 0


@dataclass(slots=True, frozen=True)
class ChangeEvent:
    table: str
    kind: str  # "insert" | "update" | "delete"
    row: Row


ChangeCallback = Callable[[ChangeEvent], None]


class RemoteStore(Protocol):
    """
    Opaque row store accessed through CRUD primitives with row-level filters.

    Filters are sequences of predicates from worktimer.store.filters
    (kept as Any here to avoid import coupling).
    """

    async def read(
            self,
            table: str,
            filters: Sequence[Any],
            order: Any | None = None,
            range_: Any | None = None,
    ) -> ReadResult: ...

    async def insert(self, table: str, row: Row) -> Row: ...

    async def update(self, table: str, filters: Sequence[Any], patch: Row) -> Row | None: ...

    async def delete(self, table: str, filters: Sequence[Any]) -> bool: ...


class ChangeFeed(Protocol):
    """Optional change notification feed for a table."""
    def subscribe(self, table: str, callback: ChangeCallback) -> Callable[[], None]: ...


class KeyValueSlots(Protocol):
    """
    Durable local key/value slots (the "survive reload" scope).

    Values are strings; callers own their encoding.
    """

    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
    def remove(self, key: str) -> None: ...
