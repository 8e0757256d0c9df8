# src/worktimer/store/sqlite_store.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import sqlite3
import uuid
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

from ..core.clock import SystemClock, ms_to_iso
from ..core.errors import MissingTableError, PreconditionError, StoreError, TransientStoreError
from ..core.ports import ChangeCallback, ChangeEvent, Clock, ReadResult, Row
from .filters import Order, Range, columns_of, has_identity, where_clause

logger = logging.getLogger(__name__)

# table -> column -> declaration used when the column has to be added to an old DB.
SCHEMA: dict[str, dict[str, str]] = {
    "projects": {
        "id": "TEXT PRIMARY KEY",
        "user_id": "TEXT NOT NULL DEFAULT ''",
        "name": "TEXT NOT NULL DEFAULT ''",
        "created_at": "TEXT",
    },
    "tasks": {
        "id": "TEXT PRIMARY KEY",
        "project_id": "TEXT NOT NULL DEFAULT ''",
        "user_id": "TEXT NOT NULL DEFAULT ''",
        "title": "TEXT NOT NULL DEFAULT ''",
        "notes": "TEXT",
        "status": "TEXT NOT NULL DEFAULT 'running'",
        "started_at": "TEXT",
        "ended_at": "TEXT",
        "accumulated_ms": "INTEGER NOT NULL DEFAULT 0",
        "duration_ms": "INTEGER NOT NULL DEFAULT 0",
        "pause_count": "INTEGER NOT NULL DEFAULT 0",
        "paused_ms": "INTEGER NOT NULL DEFAULT 0",
        "paused_at": "TEXT",
        "created_at": "TEXT",
        "updated_at": "TEXT",
    },
}

INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_projects_user ON projects(user_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_scope ON tasks(user_id, project_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_ended ON tasks(project_id, ended_at)",
)


class SqliteRemoteStore:
    """
    SQLite stand-in for the remote row store.

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Every call opens its own short-lived connection inside asyncio.to_thread, so
    the event loop only suspends at these I/O boundaries. Writes are serialized
    in issue order and notify change subscribers of the affected table after they
    commit.
    """

    def __init__(
        self,
        db_path: str | Path = "store.sqlite3",
        *,
        clock: Clock | None = None,
        tables: Sequence[str] | None = None,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock or SystemClock()
        self._tables = {name: SCHEMA[name] for name in (tables if tables is not None else SCHEMA)}
        self._subscribers: dict[str, list[ChangeCallback]] = {}
        # Writes commit in the order they were issued (the lock is FIFO).
        self._write_lock = asyncio.Lock()
        self._ensure_schema()
        logger.info("SqliteRemoteStore ready db=%s tables=%s", self._db_path, sorted(self._tables))

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        self._subscribers.clear()

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        # Explicit BEGIN/COMMIT below.
        conn.isolation_level = None
        with contextlib.suppress(sqlite3.DatabaseError):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            for table, columns in self._tables.items():
                decls = ", ".join(f"{name} {decl}" for name, decl in columns.items())
                cur.execute(f"CREATE TABLE IF NOT EXISTS {table} ({decls})")

                # Migrations (safe): add missing columns.
                cur.execute(f"PRAGMA table_info({table})")
                existing = {row["name"] for row in cur.fetchall()}
                for name, decl in columns.items():
                    if name in existing:
                        continue
                    # ALTER TABLE cannot add a PRIMARY KEY column.
                    cur.execute(f"ALTER TABLE {table} ADD COLUMN {name} {decl.replace('PRIMARY KEY', '')}")
                    logger.info("SqliteRemoteStore migration: added column %s.%s", table, name)

            for stmt in INDEXES:
                table = stmt.split(" ON ", 1)[1].split("(", 1)[0]
                if table in self._tables:
                    cur.execute(stmt)
        finally:
            conn.close()

    def _check_columns(self, table: str, columns: Sequence[str]) -> None:
        known = self._tables.get(table)
        if known is None:
            raise MissingTableError(table)
        for col in columns:
            if col not in known:
                raise PreconditionError(f'column "{col}" of relation "{table}" does not exist')

    def _now_iso(self) -> str:
        return ms_to_iso(self._clock.now_ms())

    @staticmethod
    def _map_error(table: str, exc: sqlite3.Error) -> StoreError:
        message = str(exc)
        lower = message.lower()
        if "no such table" in lower:
            return MissingTableError(table, message)
        if "locked" in lower or "unable to open" in lower or "disk i/o" in lower:
            return TransientStoreError(message)
        if isinstance(exc, sqlite3.OperationalError):
            return PreconditionError(message)
        return StoreError(message)

    async def _run(self, table: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as exc:
            logger.debug("SQLite call failed table=%s", table, exc_info=True)
            raise self._map_error(table, exc) from exc

    # ---- change feed ----

    def subscribe(self, table: str, callback: ChangeCallback) -> Callable[[], None]:
        callbacks = self._subscribers.setdefault(table, [])
        callbacks.append(callback)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                callbacks.remove(callback)

        return unsubscribe

    def _notify(self, table: str, kind: str, rows: Sequence[Row]) -> None:
        for row in rows:
            event = ChangeEvent(table=table, kind=kind, row=row)
            for callback in list(self._subscribers.get(table, ())):
                try:
                    callback(event)
                except Exception:
                    logger.exception("Change subscriber failed table=%s kind=%s", table, kind)

    # ---- sync bodies (run in a worker thread) ----

    def _read_sync(
        self,
        table: str,
        filters: Sequence[Any],
        order: Order | None,
        range_: Range | None,
    ) -> ReadResult:
        where, params = where_clause(filters)
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(f"SELECT COUNT(*) FROM {table}{where}", params)
            (count,) = cur.fetchone()

            sql = f"SELECT * FROM {table}{where}"
            if order is not None:
                # Stable tie-break so paging never repeats or skips a row.
                sql += f" ORDER BY {order.to_sql()}, rowid ASC"
            else:
                sql += " ORDER BY rowid ASC"
            page_params = list(params)
            if range_ is not None:
                sql += " LIMIT ? OFFSET ?"
                page_params.extend([range_.limit, range_.start])
            cur.execute(sql, page_params)
            return ReadResult(rows=[dict(r) for r in cur.fetchall()], count=int(count))
        finally:
            conn.close()

    def _insert_sync(self, table: str, row: Row) -> Row:
        cols = list(row)
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                f"INSERT INTO {table}({', '.join(cols)}) VALUES ({', '.join('?' for _ in cols)})",
                [row[c] for c in cols],
            )
            cur.execute(f"SELECT * FROM {table} WHERE id = ?", (row["id"],))
            return dict(cur.fetchone())
        finally:
            conn.close()

    def _update_sync(self, table: str, filters: Sequence[Any], patch: Row) -> list[Row]:
        where, params = where_clause(filters)
        sets = ", ".join(f"{col} = ?" for col in patch)
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            try:
                cur.execute(f"SELECT id FROM {table}{where}", params)
                ids = [r["id"] for r in cur.fetchall()]
                if ids:
                    marks = ",".join("?" for _ in ids)
                    cur.execute(
                        f"UPDATE {table} SET {sets} WHERE id IN ({marks})",
                        [*patch.values(), *ids],
                    )
                    cur.execute(f"SELECT * FROM {table} WHERE id IN ({marks}) ORDER BY rowid", ids)
                    updated = [dict(r) for r in cur.fetchall()]
                else:
                    updated = []
                cur.execute("COMMIT")
            except BaseException:
                cur.execute("ROLLBACK")
                raise
            return updated
        finally:
            conn.close()

    def _delete_sync(self, table: str, filters: Sequence[Any]) -> list[Row]:
        where, params = where_clause(filters)
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            try:
                cur.execute(f"SELECT * FROM {table}{where}", params)
                doomed = [dict(r) for r in cur.fetchall()]
                if doomed:
                    cur.execute(f"DELETE FROM {table}{where}", params)
                cur.execute("COMMIT")
            except BaseException:
                cur.execute("ROLLBACK")
                raise
            return doomed
        finally:
            conn.close()

    # ---- public API (RemoteStore) ----

    async def read(
        self,
        table: str,
        filters: Sequence[Any] = (),
        order: Order | None = None,
        range_: Range | None = None,
    ) -> ReadResult:
        cols = columns_of(filters) + ([order.column] if order is not None else [])
        self._check_columns(table, cols)
        return await self._run(table, self._read_sync, table, list(filters), order, range_)

    async def insert(self, table: str, row: Row) -> Row:
        self._check_columns(table, list(row))
        now = self._now_iso()
        full = dict(row)
        full.setdefault("id", uuid.uuid4().hex)
        if "created_at" in self._tables[table]:
            full.setdefault("created_at", now)
        if "updated_at" in self._tables[table]:
            full.setdefault("updated_at", now)
        async with self._write_lock:
            inserted = await self._run(table, self._insert_sync, table, full)
            self._notify(table, "insert", [inserted])
        logger.debug("Inserted %s id=%s", table, inserted.get("id"))
        return inserted

    async def update(self, table: str, filters: Sequence[Any], patch: Row) -> Row | None:
        """
        Apply `patch` to the rows matching `filters`; return the first updated row
        or None when nothing matched. `filters` must pin an id.
        """
        if not has_identity(filters):
            raise ValueError("update filters must include an id predicate")
        if not patch:
            raise ValueError("update patch is empty")
        self._check_columns(table, columns_of(filters) + list(patch))
        full = dict(patch)
        if "updated_at" in self._tables[table]:
            full["updated_at"] = self._now_iso()
        async with self._write_lock:
            updated = await self._run(table, self._update_sync, table, list(filters), full)
            self._notify(table, "update", updated)
        if not updated:
            logger.debug("Update matched no rows table=%s", table)
            return None
        return updated[0]

    async def delete(self, table: str, filters: Sequence[Any]) -> bool:
        if not has_identity(filters):
            raise ValueError("delete filters must include an id predicate")
        self._check_columns(table, columns_of(filters))
        async with self._write_lock:
            removed = await self._run(table, self._delete_sync, table, list(filters))
            self._notify(table, "delete", removed)
        return bool(removed)
