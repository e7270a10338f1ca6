"""Best-effort background retry of pair comparisons that failed in the foreground."""

import asyncio
import functools
import logging
from collections import deque

from pricesync.cache.alignment import build_pair_result, placeholder_result, stale_result
from pricesync.cache.manager import CacheManager, pair_key
from pricesync.domain.models.market import PairResult, ReconciliationTask, normalize_coin_id
from pricesync.exceptions import UpstreamError
from pricesync.infra.price.coingecko import CoinGeckoClient

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 30


class ReconciliationQueue:
    """Unbounded FIFO of failed pair fetches, drained one task per tick.

    Throughput is deliberately low so that background retries never amplify
    upstream load; a task is dropped after ``max_attempts`` failures.
    """

    def __init__(self, cache: CacheManager, client: CoinGeckoClient, max_attempts: int = MAX_ATTEMPTS) -> None:
        self._cache = cache
        self._client = client
        self._max_attempts = max_attempts
        self._tasks: deque[ReconciliationTask] = deque()

    def __len__(self) -> int:
        return len(self._tasks)

    def pending(self) -> list[ReconciliationTask]:
        return list(self._tasks)

    def enqueue(self, coin1: str, coin2: str, attempt: int = 1) -> ReconciliationTask:
        task = ReconciliationTask(
            coin1=normalize_coin_id(coin1),
            coin2=normalize_coin_id(coin2),
            attempt=attempt,
        )
        self._tasks.append(task)
        return task

    async def run_once(self) -> bool | None:
        """Process at most one task.

        The fetch runs on the pair's single-flight key, so it never overlaps a
        foreground refresh of the same pair and foreground callers that arrive
        meanwhile share its result. A task whose pair is already being
        refreshed goes back to the end of the queue without using an attempt.

        Returns None when the queue was empty, True on success, False otherwise.
        """
        if not self._tasks:
            return None

        task = self._tasks.popleft()
        key = pair_key(task.coin1, task.coin2)
        if self._cache.single_flight.in_flight(key):
            logger.info("Refresh already running for %s, deferring background retry", key)
            self._tasks.append(task)
            return False

        logger.info("Background retry for %s (attempt %d/%d)", key, task.attempt, self._max_attempts)
        result = await self._cache.single_flight.run(key, functools.partial(self._retry_pair, key, task))
        if result.warning is None:
            logger.info("Background retry succeeded for %s", key)
            return True

        if task.attempt < self._max_attempts:
            self._tasks.append(task.model_copy(update={"attempt": task.attempt + 1}))
            logger.info("Re-queued %s (attempt %d/%d)", key, task.attempt + 1, self._max_attempts)
        else:
            logger.error("Giving up on %s after %d failed attempts", key, task.attempt)
        return False

    async def _retry_pair(self, key: str, task: ReconciliationTask) -> PairResult:
        # Joined foreground callers get this result, so failures degrade here too.
        series1, series2 = await asyncio.gather(
            self._client.fetch_daily_series(task.coin1),
            self._client.fetch_daily_series(task.coin2),
            return_exceptions=True,
        )
        errors = [r for r in (series1, series2) if isinstance(r, BaseException)]
        if errors:
            for error in errors:
                if not isinstance(error, UpstreamError):
                    logger.error("Unexpected error retrying %s", key, exc_info=error)
            logger.warning("Background retry failed for %s: %s", key, errors[0])
            entry = self._cache.get_pair(key)
            if entry is not None:
                return stale_result(entry.result)
            return placeholder_result(task.coin1, task.coin2)

        result = build_pair_result(task.coin1, task.coin2, series1, series2)
        self._cache.store_pair(key, result)
        return result
