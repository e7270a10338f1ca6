"""Fixed-interval background jobs: warm-up, preload sweep, prewarm, retry drain, cache check."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from pricesync.cache.pairs import PairCache
from pricesync.cache.snapshot import SnapshotCache
from pricesync.config import Settings
from pricesync.exceptions import SnapshotUnavailableError
from pricesync.workers.reconciliation import ReconciliationQueue

logger = logging.getLogger(__name__)


class BackgroundScheduler:
    """Runs each job in its own asyncio task so no job blocks another or the API.

    A failing iteration is logged and the loop carries on; tasks are only
    cancelled by ``stop()`` at shutdown.
    """

    def __init__(
        self,
        settings: Settings,
        snapshots: SnapshotCache,
        pairs: PairCache,
        queue: ReconciliationQueue,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._snapshots = snapshots
        self._pairs = pairs
        self._queue = queue
        self._sleep = sleep
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        if self._tasks:
            return
        s = self._settings
        self._tasks = [
            asyncio.create_task(self._startup(), name="startup-warmup"),
            asyncio.create_task(self._every(s.reconcile_interval, self._queue.run_once), name="reconcile"),
            asyncio.create_task(self._every(s.preload_interval, self.preload_all), name="preload-sweep"),
            asyncio.create_task(self._every(s.prewarm_interval, self.prewarm_pairs), name="prewarm"),
            asyncio.create_task(self._every(s.cache_check_interval, self.check_cache), name="cache-check"),
        ]
        logger.info("Started %d background jobs", len(self._tasks))

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    async def _every(self, interval: float, job: Callable[[], Awaitable[object]]) -> None:
        while True:
            await self._sleep(interval)
            try:
                await job()
            except Exception:
                logger.exception("Background job %s failed", getattr(job, "__name__", job))

    async def _startup(self) -> None:
        await self._sleep(self._settings.warmup_delay)
        if await self.warm_up():
            await self._sleep(self._settings.preload_start_delay)
            await self.preload_all()

    async def warm_up(self) -> bool:
        """Force a snapshot refresh, retrying a bounded number of times."""
        attempts = self._settings.warmup_attempts
        for attempt in range(1, attempts + 1):
            logger.info("Warm-up attempt %d/%d", attempt, attempts)
            try:
                await self._snapshots.get_snapshot(force=True)
            except SnapshotUnavailableError as exc:
                logger.warning("Warm-up failed (attempt %d): %s", attempt, exc.__cause__ or exc)
                if attempt < attempts:
                    await self._sleep(self._settings.warmup_retry_delay)
                continue
            logger.info("Snapshot warm-up OK")
            return True

        logger.error("Max warm-up attempts reached, giving up")
        return False

    async def preload_all(self) -> None:
        """Refresh every configured preload coin, spaced out to stay under the rate limit."""
        coins = self._settings.preload_coins
        logger.info("Starting chart preloads for %d coins", len(coins))
        for coin_id in coins:
            await self._pairs.refresh_preload(coin_id)
            await self._sleep(self._settings.preload_spacing)
        logger.info("Chart preloads completed")

    async def prewarm_pairs(self) -> None:
        for coin1, coin2 in self._settings.prewarm_pairs:
            await self._sleep(self._settings.prewarm_spacing)
            logger.info("Prewarming %s_%s", coin1, coin2)
            self._queue.enqueue(coin1, coin2)

    async def check_cache(self) -> None:
        """Re-run warm-up and preloads if the snapshot cache is still empty."""
        if self._snapshots.has_snapshot():
            return
        logger.info("Snapshot cache empty, running internal warm-up")
        if await self.warm_up():
            await self.preload_all()
