# tests/fakes.py

from __future__ import annotations

import asyncio
import contextlib
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from worktimer.core.clock import ms_to_iso
from worktimer.core.errors import MissingTableError, StoreError
from worktimer.core.ports import ChangeCallback, ChangeEvent, ReadResult, Row
from worktimer.store.filters import Order, Range, has_identity, row_matches

# 2024-01-01T00:00:00Z
T0_MS = 1_704_067_200_000


@dataclass(slots=True)
class ManualClock:
    """Clock that only moves when a test says so."""

    now: int = T0_MS

    def now_ms(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class FakeRemoteStore:
    """
    In-memory RemoteStore + ChangeFeed used by unit tests.

    - Counts calls per operation for de-duplication assertions
    - `gate` (when set) holds every read/update until the test opens it
    - `fail_next` raises the given StoreError from the next read/update/delete
    - tables listed in `missing` behave like a relation that does not exist
    """

    def __init__(self, clock: ManualClock | None = None) -> None:
        self.clock = clock or ManualClock()
        self.tables: dict[str, list[Row]] = {"projects": [], "tasks": []}
        self.calls: dict[str, int] = {"read": 0, "insert": 0, "update": 0, "delete": 0}
        self.gate: asyncio.Event | None = None
        self.fail_next: StoreError | None = None
        self.missing: set[str] = set()
        self._subscribers: dict[str, list[ChangeCallback]] = {}

    # ---- test helpers ----

    def seed(self, table: str, **row: Any) -> Row:
        full = {"id": uuid.uuid4().hex, "created_at": ms_to_iso(self.clock.now_ms()), **row}
        if table == "tasks":
            full.setdefault("updated_at", full["created_at"])
            for col in ("accumulated_ms", "duration_ms", "pause_count", "paused_ms"):
                full.setdefault(col, 0)
        self.tables[table].append(full)
        return dict(full)

    def row(self, table: str, row_id: str) -> Row | None:
        for r in self.tables[table]:
            if r["id"] == row_id:
                return dict(r)
        return None

    async def _enter(self, op: str, table: str) -> None:
        self.calls[op] += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_next is not None:
            exc, self.fail_next = self.fail_next, None
            raise exc
        if table in self.missing:
            raise MissingTableError(table)

    def _notify(self, table: str, kind: str, row: Row) -> None:
        for cb in list(self._subscribers.get(table, ())):
            cb(ChangeEvent(table=table, kind=kind, row=dict(row)))

    # ---- RemoteStore ----

    async def read(
        self,
        table: str,
        filters: Sequence[Any] = (),
        order: Order | None = None,
        range_: Range | None = None,
    ) -> ReadResult:
        await self._enter("read", table)
        rows = [dict(r) for r in self.tables[table] if row_matches(filters, r)]
        if order is not None:
            present = [r for r in rows if r.get(order.column) is not None]
            absent = [r for r in rows if r.get(order.column) is None]
            present.sort(key=lambda r: r[order.column], reverse=not order.ascending)
            rows = absent + present if order.nulls_first else present + absent
        count = len(rows)
        if range_ is not None:
            rows = rows[range_.start: range_.end + 1]
        return ReadResult(rows=rows, count=count)

    async def insert(self, table: str, row: Row) -> Row:
        await self._enter("insert", table)
        now = ms_to_iso(self.clock.now_ms())
        full = {"id": uuid.uuid4().hex, "created_at": now, **row}
        if table == "tasks":
            full.setdefault("updated_at", now)
        self.tables[table].append(full)
        self._notify(table, "insert", full)
        return dict(full)

    async def update(self, table: str, filters: Sequence[Any], patch: Row) -> Row | None:
        assert has_identity(filters)
        await self._enter("update", table)
        for r in self.tables[table]:
            if row_matches(filters, r):
                r.update(patch)
                r["updated_at"] = ms_to_iso(self.clock.now_ms())
                self._notify(table, "update", r)
                return dict(r)
        return None

    async def delete(self, table: str, filters: Sequence[Any]) -> bool:
        assert has_identity(filters)
        await self._enter("delete", table)
        keep = [r for r in self.tables[table] if not row_matches(filters, r)]
        removed = [r for r in self.tables[table] if row_matches(filters, r)]
        self.tables[table] = keep
        for r in removed:
            self._notify(table, "delete", r)
        return bool(removed)

    # ---- ChangeFeed ----

    def subscribe(self, table: str, callback: ChangeCallback) -> Callable[[], None]:
        callbacks = self._subscribers.setdefault(table, [])
        callbacks.append(callback)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                callbacks.remove(callback)

        return unsubscribe


@dataclass(slots=True)
class RenderRecorder:
    frames: list[int] = field(default_factory=list)

    def __call__(self, display_ms: int) -> None:
        self.frames.append(display_ms)
