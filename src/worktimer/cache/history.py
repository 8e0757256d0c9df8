# src/worktimer/cache/history.py

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta, timezone

from ..core.clock import ms_to_iso
from ..core.errors import MissingTableError, PreconditionError
from ..core.ports import RemoteStore
from ..core.session import ActorSession
from ..store.filters import Eq, Gte, In, Lte, Order, Range
from ..timer.sync_gateway import TASKS_TABLE
from ..timer.task_models import TERMINAL_STATUSES, Task
from .query_cache import CacheLookup, LookupSource

logger = logging.getLogger(__name__)

HISTORY_FEATURE = "history"


def history_scope(project_id: str) -> str:
    return f"history:{project_id}"


def _day_bound_iso(day: date, *, end: bool) -> str:
    # Local calendar day, stored timestamps are UTC.
    moment = datetime.combine(day, time.max if end else time.min).astimezone()
    epoch = datetime(1970, 1, 1, tzinfo=timezone.utc)
    return ms_to_iso((moment - epoch) // timedelta(milliseconds=1))


@dataclass(slots=True, frozen=True)
class DateRange:
    """Inclusive range of local calendar days on started_at; either end may be open."""

    start: date | None = None
    end: date | None = None

    def cache_filters(self) -> dict[str, str | None]:
        return {
            "from": self.start.isoformat() if self.start else None,
            "to": self.end.isoformat() if self.end else None,
        }

    def predicates(self) -> list:
        preds: list = []
        if self.start is not None:
            preds.append(Gte("started_at", _day_bound_iso(self.start, end=False)))
        if self.end is not None:
            preds.append(Lte("started_at", _day_bound_iso(self.end, end=True)))
        return preds


@dataclass(slots=True, frozen=True)
class HistoryPage:
    page: int
    page_size: int
    total: int = 0
    rows: list[Task] = field(default_factory=list)

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(self.total / self.page_size))


class HistoryLoader:
    """
    Paginated task history for one (actor, project), read through the session cache.

    Newest first by ended_at; tasks still running or paused (no ended_at) lead.
    A missing table switches history off for the rest of the session.
    """

    def __init__(self, store: RemoteStore, session: ActorSession, *, page_size: int = 20) -> None:
        self._store = store
        self._session = session
        self.page_size = max(1, int(page_size))

    def _key(self, project_id: str, page: int, date_range: DateRange) -> str:
        return self._session.cache.key(
            history_scope(project_id), page=page, filters=date_range.cache_filters()
        )

    async def load(
        self,
        project_id: str | None,
        page: int = 0,
        date_range: DateRange | None = None,
    ) -> CacheLookup[HistoryPage]:
        page = max(0, int(page))
        if not project_id:
            return CacheLookup(LookupSource.FETCHED, HistoryPage(page=0, page_size=self.page_size))
        if not self._session.is_available(HISTORY_FEATURE):
            return CacheLookup(LookupSource.FETCHED, None)

        date_range = date_range or DateRange()
        actor = self._session.actor_id
        filters = [Eq("project_id", project_id), Eq("user_id", actor), *date_range.predicates()]

        async def query() -> HistoryPage:
            result = await self._store.read(
                TASKS_TABLE,
                filters,
                order=Order("ended_at", ascending=False, nulls_first=True),
                range_=Range.page(page, self.page_size),
            )
            return HistoryPage(
                page=page,
                page_size=self.page_size,
                total=result.count,
                rows=[Task.from_row(r) for r in result.rows],
            )

        try:
            return await self._session.cache.fetch(self._key(project_id, page, date_range), query)
        except MissingTableError:
            self._session.disable(HISTORY_FEATURE)
            raise

    async def delete(
        self,
        task: Task,
        *,
        page: int = 0,
        date_range: DateRange | None = None,
    ) -> bool:
        """Delete a finished/canceled task and patch the cached page it was shown on."""
        if not task.is_terminal:
            raise PreconditionError("Only finished or canceled tasks can be deleted.")

        removed = await self._store.delete(
            TASKS_TABLE,
            [Eq("id", task.id), Eq("user_id", self._session.actor_id), In.of("status", TERMINAL_STATUSES)],
        )
        if not removed:
            logger.info("Delete matched nothing task_id=%s", task.id)
            return False

        key = self._key(task.project_id, page, date_range or DateRange())
        cached = self._session.cache.get(key)
        if isinstance(cached, HistoryPage):
            self._session.cache.put(
                key,
                replace(
                    cached,
                    total=max(0, cached.total - 1),
                    rows=[r for r in cached.rows if r.id != task.id],
                ),
            )
        logger.info("Task %s deleted", task.id)
        return True
