"""In-memory cache state: snapshot slot, pair entries, preload entries, in-flight refreshes."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Hashable
from datetime import datetime, timezone
from typing import Any, TypeVar

from pricesync.domain.models.market import (
    HealthStatus,
    PairEntry,
    PairResult,
    PreloadEntry,
    PricePoint,
    Snapshot,
    SnapshotRow,
    normalize_coin_id,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SNAPSHOT_KEY = "snapshot"


def preload_key(coin_id: str) -> tuple[str, str]:
    """Single-flight key for a coin preload; a tuple, so it never equals a pair key."""
    return ("preload", normalize_coin_id(coin_id))


def pair_key(coin1: str, coin2: str) -> str:
    """Order-independent cache key for a two-coin comparison."""
    return "_".join(sorted([normalize_coin_id(coin1), normalize_coin_id(coin2)]))


class SingleFlight:
    """At most one running refresh per key; concurrent callers share its outcome.

    The marker is registered before the refresh coroutine gets to run and is
    removed when it settles, whether it succeeded or raised.
    """

    def __init__(self) -> None:
        self._tasks: dict[Hashable, asyncio.Task[Any]] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._tasks

    async def run(self, key: Hashable, refresh: Callable[[], Awaitable[T]]) -> T:
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(self._settle(key, refresh))
            self._tasks[key] = task
        else:
            logger.debug("Joining in-flight refresh for %s", key)
        # shield: a cancelled caller must not cancel the refresh the others are waiting on
        return await asyncio.shield(task)

    async def _settle(self, key: Hashable, refresh: Callable[[], Awaitable[T]]) -> T:
        try:
            return await refresh()
        finally:
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]


class CacheManager:
    """Owns all cache state. Entries are replaced whole, never mutated in place."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self.clock = clock
        self.started_at = clock()
        self.snapshot: Snapshot | None = None
        self.pairs: dict[str, PairEntry] = {}
        self.preloads: dict[str, PreloadEntry] = {}
        self.single_flight = SingleFlight()

    def _stamp(self, previous: float | None) -> float:
        now = self.clock()
        return now if previous is None else max(now, previous)

    def age(self, cached_at: float) -> float:
        return self.clock() - cached_at

    # -- snapshot --------------------------------------------------------------

    def store_snapshot(self, rows: list[SnapshotRow]) -> Snapshot:
        previous = self.snapshot.cached_at if self.snapshot else None
        snapshot = Snapshot(
            rows=rows,
            cached_at=self._stamp(previous),
            fetched_at=datetime.now(timezone.utc),
        )
        self.snapshot = snapshot
        return snapshot

    def health(self, pending_retries: int = 0) -> HealthStatus:
        snapshot = self.snapshot
        return HealthStatus(
            cache_ready=snapshot is not None,
            cache_age_seconds=self.age(snapshot.cached_at if snapshot else self.started_at),
            last_fetch=snapshot.fetched_at if snapshot else None,
            pair_entries=len(self.pairs),
            preload_entries=len(self.preloads),
            reconciliation_pending=pending_retries,
        )

    # -- pairs -----------------------------------------------------------------

    def get_pair(self, key: str) -> PairEntry | None:
        return self.pairs.get(key)

    def store_pair(self, key: str, result: PairResult) -> PairEntry:
        previous = self.pairs.get(key)
        entry = PairEntry(
            key=key,
            cached_at=self._stamp(previous.cached_at if previous else None),
            result=result,
        )
        self.pairs[key] = entry
        return entry

    # -- preloads --------------------------------------------------------------

    def get_preload(self, coin_id: str) -> PreloadEntry | None:
        return self.preloads.get(normalize_coin_id(coin_id))

    def store_preload(self, coin_id: str, prices: list[PricePoint]) -> PreloadEntry:
        coin_id = normalize_coin_id(coin_id)
        previous = self.preloads.get(coin_id)
        entry = PreloadEntry(
            coin_id=coin_id,
            cached_at=self._stamp(previous.cached_at if previous else None),
            name=coin_id,
            prices=prices,
        )
        self.preloads[coin_id] = entry
        return entry
