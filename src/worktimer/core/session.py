# src/worktimer/core/session.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..cache.query_cache import InFlightGuard, QueryCache

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ActorSession:
    """
    Everything cached on behalf of one signed-in actor.

    Built on sign-in, torn down on sign-out; a new actor never sees the previous
    actor's cache entries or in-flight markers.
    """

    actor_id: str
    cache: QueryCache = field(init=False)
    reconcile_guard: InFlightGuard = field(default_factory=InFlightGuard)
    # Feature areas switched off after a precondition failure (e.g. missing table).
    unavailable: set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        if not self.actor_id:
            raise ValueError("actor_id is required")
        self.cache = QueryCache(self.actor_id)
        logger.info("Session opened actor=%s", self.actor_id)

    def disable(self, feature: str) -> None:
        if feature not in self.unavailable:
            logger.warning("Feature %s disabled for actor=%s", feature, self.actor_id)
        self.unavailable.add(feature)

    def is_available(self, feature: str) -> bool:
        return feature not in self.unavailable

    def close(self) -> None:
        self.cache.close()
        self.reconcile_guard.clear()
        logger.info("Session closed actor=%s", self.actor_id)
