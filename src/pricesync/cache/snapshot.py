"""SnapshotCache TTL cache for the full market list with single-flight refresh."""

import logging

from pricesync.cache.manager import SNAPSHOT_KEY, CacheManager
from pricesync.domain.models.market import Snapshot
from pricesync.exceptions import SnapshotUnavailableError, UpstreamError
from pricesync.infra.price.coingecko import CoinGeckoClient

logger = logging.getLogger(__name__)

SNAPSHOT_TTL = 15 * 60


class SnapshotCache:
    def __init__(self, cache: CacheManager, client: CoinGeckoClient, ttl: float = SNAPSHOT_TTL) -> None:
        self._cache = cache
        self._client = client
        self._ttl = ttl

    def has_snapshot(self) -> bool:
        return self._cache.snapshot is not None

    def is_fresh(self) -> bool:
        snapshot = self._cache.snapshot
        return snapshot is not None and self._cache.age(snapshot.cached_at) < self._ttl

    async def get_snapshot(self, force: bool = False) -> Snapshot:
        """Return the market snapshot, refreshing it when expired or forced.

        A failed refresh serves the previous snapshot if there is one. With no
        previous snapshot, SnapshotUnavailableError reaches every joined caller.
        """
        if not force and self.is_fresh():
            logger.debug("Serving snapshot from cache")
            return self._cache.snapshot  # type: ignore[return-value]

        return await self._cache.single_flight.run(SNAPSHOT_KEY, self._refresh)

    async def _refresh(self) -> Snapshot:
        previous = self._cache.snapshot
        if previous is not None:
            logger.info("Refreshing snapshot, last fetch %.1fs ago", self._cache.age(previous.cached_at))
        else:
            logger.info("Fetching initial snapshot")

        try:
            rows = await self._client.fetch_markets()
        except UpstreamError as exc:
            logger.error("Snapshot refresh failed: %s", exc)
            if self._cache.snapshot is not None:
                logger.warning("Returning stale snapshot")
                return self._cache.snapshot
            raise SnapshotUnavailableError("Market snapshot unavailable and no cache to fall back on") from exc

        snapshot = self._cache.store_snapshot(rows)
        logger.info("Fetched %d coins", len(rows))
        return snapshot
