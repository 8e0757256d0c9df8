# src/worktimer/cache/query_cache.py

from __future__ import annotations

"""
Read-path memoization and de-duplication.

A fingerprint is a deterministic string built from (actor, scope, page, filters,
refresh counter). Bumping a scope's refresh counter changes every fingerprint under
that scope, so stale entries simply stop being looked up; nothing is evicted by hand.

Concurrent callers asking for a fingerprint that is already being fetched are not
queued: they get SKIPPED back and the first caller publishes the result.
"""

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def fingerprint(
    actor: str,
    scope: str,
    *,
    page: int | None = None,
    filters: Mapping[str, Any] | None = None,
    refresh: int = 0,
) -> str:
    """
    actor:scope:page:refresh:filters. Filters are sorted by key so that the same
    logical query always yields the same string.
    """
    parts = [actor, scope, "-" if page is None else str(page), str(refresh)]
    if filters:
        parts.append(",".join(f"{k}={'' if v is None else v}" for k, v in sorted(filters.items())))
    else:
        parts.append("all")
    return ":".join(parts)


class InFlightGuard:
    """Fingerprint-as-mutex: the first caller holds the key, later callers are turned away."""

    def __init__(self) -> None:
        self._keys: set[str] = set()

    def try_acquire(self, key: str) -> bool:
        if key in self._keys:
            return False
        self._keys.add(key)
        return True

    def release(self, key: str) -> None:
        self._keys.discard(key)

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def clear(self) -> None:
        self._keys.clear()


class LookupSource(str, Enum):
    HIT = "hit"
    FETCHED = "fetched"
    SKIPPED = "skipped"


@dataclass(slots=True, frozen=True)
class CacheLookup(Generic[T]):
    source: LookupSource
    value: T | None = None

    @property
    def skipped(self) -> bool:
        return self.source == LookupSource.SKIPPED


class QueryCache:
    """
    Per-actor cache of read results.

    Owned by an ActorSession: built when the actor signs in, closed when they sign out.
    Results that settle after close() are dropped.
    """

    def __init__(self, actor: str) -> None:
        self.actor = actor
        self._entries: dict[str, Any] = {}
        self._in_flight = InFlightGuard()
        self._refresh: dict[str, int] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def refresh_counter(self, scope: str) -> int:
        return self._refresh.get(scope, 0)

    def key(self, scope: str, *, page: int | None = None, filters: Mapping[str, Any] | None = None) -> str:
        return fingerprint(self.actor, scope, page=page, filters=filters, refresh=self.refresh_counter(scope))

    def invalidate(self, scope: str) -> int:
        n = self._refresh.get(scope, 0) + 1
        self._refresh[scope] = n
        logger.debug("Cache scope %s refresh -> %s", scope, n)
        return n

    def get(self, key: str) -> Any | None:
        return self._entries.get(key)

    def put(self, key: str, value: Any) -> None:
        if self._closed:
            return
        self._entries[key] = value

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def fetch(self, key: str, query_fn: Callable[[], Awaitable[T]]) -> CacheLookup[T]:
        if key in self._entries:
            return CacheLookup(LookupSource.HIT, self._entries[key])

        if not self._in_flight.try_acquire(key):
            logger.debug("Fetch skipped, already in flight key=%s", key)
            return CacheLookup(LookupSource.SKIPPED)

        try:
            value = await query_fn()
        finally:
            self._in_flight.release(key)

        if self._closed:
            logger.debug("Dropping result for closed cache key=%s", key)
            return CacheLookup(LookupSource.FETCHED, value)
        self._entries[key] = value
        return CacheLookup(LookupSource.FETCHED, value)

    def close(self) -> None:
        self._entries.clear()
        self._in_flight.clear()
        self._refresh.clear()
        self._closed = True
