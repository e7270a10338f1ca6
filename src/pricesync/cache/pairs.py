"""PairCache: two-coin comparisons and single-coin preloads.

Comparisons are cached per canonical pair key with a short TTL and refreshed
through the shared single-flight, so concurrent requests for the same pair (in
either order) cost one pair of upstream fetches. Failures degrade to stale
data or a placeholder; ``get_comparison`` never raises for upstream errors.
"""

import asyncio
import functools
import logging
import random
from collections.abc import Awaitable, Callable

from pricesync.cache.alignment import (
    build_pair_result,
    placeholder_result,
    stale_result,
)
from pricesync.cache.manager import CacheManager, pair_key, preload_key
from pricesync.domain.models.market import (
    PairResult,
    PreloadEntry,
    PricePoint,
    normalize_coin_id,
)
from pricesync.exceptions import ComparisonUnavailableError, UpstreamError
from pricesync.infra.price.coingecko import CoinGeckoClient
from pricesync.workers.reconciliation import ReconciliationQueue

logger = logging.getLogger(__name__)

PAIR_TTL = 60

# Spacing between the two coin requests of one comparison, on top of the transport throttle
PACING_MIN = 1.5
PACING_MAX = 3.5


class PairCache:
    def __init__(
        self,
        cache: CacheManager,
        client: CoinGeckoClient,
        queue: ReconciliationQueue,
        ttl: float = PAIR_TTL,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._cache = cache
        self._client = client
        self._queue = queue
        self._ttl = ttl
        self._sleep = sleep

    async def get_comparison(self, coin1: str, coin2: str) -> PairResult:
        """Aligned one-year daily series for two coins.

        Returns fresh data, a partial result if only one coin loaded, stale data
        tagged with a warning, or a placeholder (and queues a background retry).
        """
        coin1 = normalize_coin_id(coin1)
        coin2 = normalize_coin_id(coin2)
        key = pair_key(coin1, coin2)

        entry = self._cache.get_pair(key)
        if entry is not None and self._cache.age(entry.cached_at) < self._ttl:
            logger.debug("Served %s from cache", key)
            return entry.result

        return await self._cache.single_flight.run(
            key, functools.partial(self._refresh, key, coin1, coin2)
        )

    async def _refresh(self, key: str, coin1: str, coin2: str) -> PairResult:
        try:
            result = await self._fetch_pair(coin1, coin2)
        except ComparisonUnavailableError as exc:
            logger.error("%s", exc)
            return self._degrade(key, coin1, coin2)

        self._cache.store_pair(key, result)
        counts = "/".join(str(len(series.prices)) for series in result.data)
        logger.info("Cached compare %s (%s points)", key, counts)
        return result

    async def _fetch_pair(self, coin1: str, coin2: str) -> PairResult:
        series1 = await self._fetch_series(coin1)

        delay = random.uniform(PACING_MIN, PACING_MAX)
        logger.debug("Waiting %.0fms before second coin request", delay * 1000)
        await self._sleep(delay)

        series2 = await self._fetch_series(coin2)

        if series1 is None and series2 is None:
            raise ComparisonUnavailableError(coin1, coin2)
        if series1 is None or series2 is None:
            logger.warning("Partial comparison for %s / %s: one coin failed to load", coin1, coin2)
        return build_pair_result(coin1, coin2, series1, series2)

    async def _fetch_series(self, coin_id: str) -> list[PricePoint] | None:
        try:
            return await self._client.fetch_daily_series(coin_id)
        except UpstreamError as exc:
            logger.warning("Series fetch failed for %s: %s", coin_id, exc)
            return None

    def _degrade(self, key: str, coin1: str, coin2: str) -> PairResult:
        entry = self._cache.get_pair(key)
        if entry is not None:
            logger.warning("Serving stale compare %s", key)
            return stale_result(entry.result)

        logger.warning("No cached compare for %s, enqueuing background retry", key)
        self._queue.enqueue(coin1, coin2)
        return placeholder_result(coin1, coin2)

    # -- single-coin preloads ----------------------------------------------------

    async def ensure_preloaded(self, coin_id: str) -> PreloadEntry | None:
        """Cached one-year series for a coin, loading it on first use.

        Never raises; None means the coin has no data for now.
        """
        coin_id = normalize_coin_id(coin_id)
        if not coin_id:
            return None

        entry = self._cache.get_preload(coin_id)
        if entry is not None and entry.prices:
            return entry

        logger.info("On-demand preload for %s", coin_id)
        return await self._cache.single_flight.run(
            preload_key(coin_id), functools.partial(self._load_preload, coin_id)
        )

    async def refresh_preload(self, coin_id: str) -> PreloadEntry | None:
        """Re-fetch a coin's series regardless of age; keeps the old entry on failure."""
        coin_id = normalize_coin_id(coin_id)
        entry = await self._cache.single_flight.run(
            preload_key(coin_id), functools.partial(self._load_preload, coin_id)
        )
        return entry or self._cache.get_preload(coin_id)

    async def _load_preload(self, coin_id: str) -> PreloadEntry | None:
        try:
            prices = await self._client.fetch_daily_series(coin_id)
        except UpstreamError as exc:
            logger.warning("Preload failed for %s: %s", coin_id, exc)
            return None

        entry = self._cache.store_preload(coin_id, prices)
        logger.info("Preloaded chart for %s (%d points)", coin_id, len(prices))
        return entry
