# src/worktimer/store/filters.py

from __future__ import annotations

"""
Row-level filter predicates for the remote store contract.

They are deliberately tiny: equality, set membership and inclusive bounds are all
the timer and its list views need. Each predicate can render itself as SQL and
evaluate itself against a plain row (the change watcher and test fakes use that).
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


@dataclass(slots=True, frozen=True)
class Eq:
    column: str
    value: Any

    def to_sql(self) -> tuple[str, list[Any]]:
        if self.value is None:
            return f"{self.column} IS NULL", []
        return f"{self.column} = ?", [_plain(self.value)]

    def matches(self, row: dict[str, Any]) -> bool:
        return row.get(self.column) == _plain(self.value)


@dataclass(slots=True, frozen=True)
class In:
    column: str
    values: tuple[Any, ...]

    @classmethod
    def of(cls, column: str, values: Iterable[Any]) -> In:
        return cls(column, tuple(_plain(v) for v in values))

    def to_sql(self) -> tuple[str, list[Any]]:
        if not self.values:
            return "0", []
        placeholders = ",".join("?" for _ in self.values)
        return f"{self.column} IN ({placeholders})", list(self.values)

    def matches(self, row: dict[str, Any]) -> bool:
        return row.get(self.column) in self.values


@dataclass(slots=True, frozen=True)
class Gte:
    column: str
    value: Any

    def to_sql(self) -> tuple[str, list[Any]]:
        return f"{self.column} >= ?", [self.value]

    def matches(self, row: dict[str, Any]) -> bool:
        v = row.get(self.column)
        return v is not None and v >= self.value


@dataclass(slots=True, frozen=True)
class Lte:
    column: str
    value: Any

    def to_sql(self) -> tuple[str, list[Any]]:
        return f"{self.column} <= ?", [self.value]

    def matches(self, row: dict[str, Any]) -> bool:
        v = row.get(self.column)
        return v is not None and v <= self.value


@dataclass(slots=True, frozen=True)
class Order:
    column: str
    ascending: bool = True
    nulls_first: bool = False

    def to_sql(self) -> str:
        direction = "ASC" if self.ascending else "DESC"
        nulls = "NULLS FIRST" if self.nulls_first else "NULLS LAST"
        return f"{self.column} {direction} {nulls}"


@dataclass(slots=True, frozen=True)
class Range:
    """Inclusive row window [start, end], zero-based."""

    start: int
    end: int

    @classmethod
    def page(cls, page: int, size: int) -> Range:
        start = max(0, page) * size
        return cls(start, start + size - 1)

    @property
    def limit(self) -> int:
        return max(0, self.end - self.start + 1)


def columns_of(filters: Sequence[Any]) -> list[str]:
    return [f.column for f in filters]


def has_identity(filters: Sequence[Any]) -> bool:
    return any(isinstance(f, Eq) and f.column == "id" and f.value is not None for f in filters)


def where_clause(filters: Sequence[Any]) -> tuple[str, list[Any]]:
    if not filters:
        return "", []
    parts: list[str] = []
    params: list[Any] = []
    for f in filters:
        clause, p = f.to_sql()
        parts.append(clause)
        params.extend(p)
    return " WHERE " + " AND ".join(parts), params


def row_matches(filters: Sequence[Any], row: dict[str, Any]) -> bool:
    return all(f.matches(row) for f in filters)
