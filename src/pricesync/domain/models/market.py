"""Domain types for market snapshots, price series and pair comparisons."""

from datetime import datetime

from pydantic import BaseModel, Field

# (timestamp in ms since epoch, price)
PricePoint = tuple[int, float]


def normalize_coin_id(coin_id: str) -> str:
    """Coin ids are case-insensitive at the boundary; stored lower-case."""
    return coin_id.strip().lower()


class SnapshotRow(BaseModel):
    """Current market state of one coin. Every field but ``id`` may be missing upstream."""

    id: str
    symbol: str | None = None
    name: str | None = None
    current_price: float | None = None
    market_cap: float | None = None
    total_volume: float | None = None
    price_change_percentage_24h: float | None = None


class Snapshot(BaseModel):
    """Full market list in upstream order (market cap descending)."""

    rows: list[SnapshotRow]
    cached_at: float  # monotonic clock
    fetched_at: datetime  # wall clock, UTC


class SeriesData(BaseModel):
    name: str
    prices: list[PricePoint] = Field(default_factory=list)


class PairResult(BaseModel):
    """Two-coin comparison. ``warning`` is set only on degraded results."""

    coin1: str
    coin2: str
    data: list[SeriesData]
    warning: str | None = None


class PairEntry(BaseModel):
    key: str
    cached_at: float
    result: PairResult


class PreloadEntry(BaseModel):
    """A single coin's one-year daily series, kept fresh by the preload sweep."""

    coin_id: str
    cached_at: float
    name: str
    prices: list[PricePoint]


class ReconciliationTask(BaseModel):
    coin1: str
    coin2: str
    attempt: int = 1


class HealthStatus(BaseModel):
    """Read-only cache introspection; serialized with camelCase keys for the API."""

    cache_ready: bool = Field(serialization_alias="cacheReady")
    cache_age_seconds: float = Field(serialization_alias="cacheAgeSeconds")
    last_fetch: datetime | None = Field(default=None, serialization_alias="lastFetch")
    pair_entries: int = Field(default=0, serialization_alias="pairEntries")
    preload_entries: int = Field(default=0, serialization_alias="preloadEntries")
    reconciliation_pending: int = Field(default=0, serialization_alias="pendingRetries")
