import logging
from datetime import datetime, timezone
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from starlette.responses import JSONResponse

from pricesync.api.deps import (
    get_cache_manager,
    get_pair_cache,
    get_reconciliation_queue,
    get_settings,
    get_snapshot_cache,
)
from pricesync.cache.manager import CacheManager
from pricesync.cache.pairs import PairCache
from pricesync.cache.snapshot import SnapshotCache
from pricesync.config import Settings
from pricesync.domain.models.market import normalize_coin_id
from pricesync.exceptions import SnapshotUnavailableError
from pricesync.report.flatten import flatten_comparison, flatten_single, flatten_with_pct_change
from pricesync.workers.reconciliation import ReconciliationQueue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/crypto", tags=["crypto"])

SnapshotsDep = Annotated[SnapshotCache, Depends(get_snapshot_cache)]
PairsDep = Annotated[PairCache, Depends(get_pair_cache)]

DEFAULT_LIMIT = 250


def _parse_limit(raw: str | None) -> int:
    try:
        limit = int(raw) if raw is not None else DEFAULT_LIMIT
    except ValueError:
        return DEFAULT_LIMIT
    return limit if limit > 0 else DEFAULT_LIMIT


def _parse_coin_list(raw: str) -> list[str]:
    return [coin for coin in (normalize_coin_id(part) for part in raw.split(",")) if coin]


@router.get("/prices")
async def list_prices(snapshots: SnapshotsDep, limit: Optional[str] = Query(None)):
    try:
        snapshot = await snapshots.get_snapshot()
    except SnapshotUnavailableError as exc:
        logger.error("Prices unavailable: %s", exc)
        return JSONResponse(status_code=200, content={"error": "Temporarily unavailable"})
    return [row.model_dump() for row in snapshot.rows[: _parse_limit(limit)]]


@router.get("/compare")
async def compare(pairs: PairsDep, coin1: str = Query("bitcoin"), coin2: str = Query("ethereum")):
    logger.info("Compare request: %s vs %s", coin1, coin2)
    result = await pairs.get_comparison(coin1, coin2)
    return result.model_dump(exclude_none=True)


@router.get("/compare_flat")
async def compare_flat(pairs: PairsDep, coin1: str = Query("bitcoin"), coin2: str = Query("ethereum")):
    """Comparison as a flat ``{coin, timestamp, price}`` table."""
    result = await pairs.get_comparison(coin1, coin2)
    return [row.model_dump() for row in flatten_comparison(result)]


@router.get("/compare_flat_all")
async def compare_flat_all(
    pairs: PairsDep,
    settings: Annotated[Settings, Depends(get_settings)],
    coins: Optional[str] = Query(None, description="Comma-separated coin ids; defaults to the preload list"),
):
    """Flat table with ``pct_change`` for several coins, from the preload cache."""
    coin_list = _parse_coin_list(coins) if coins else settings.preload_coins

    rows = []
    for coin_id in coin_list:
        entry = await pairs.ensure_preloaded(coin_id)
        if entry is None or not entry.prices:
            logger.warning("Still no data for %s", coin_id)
            continue
        coin_rows = flatten_with_pct_change(entry.name, entry.prices)
        if not coin_rows:
            logger.warning("No valid first price for %s", coin_id)
        rows.extend(row.model_dump() for row in coin_rows)
    return rows


@router.get("/flat_single")
async def flat_single(pairs: PairsDep, coin: str = Query("")):
    coin_id = normalize_coin_id(coin)
    if not coin_id:
        raise HTTPException(status_code=400, detail="Missing ?coin= parameter")

    entry = await pairs.ensure_preloaded(coin_id)
    return [row.model_dump() for row in flatten_single(entry)]


@router.get("/health")
async def health(
    cache: Annotated[CacheManager, Depends(get_cache_manager)],
    queue: Annotated[ReconciliationQueue, Depends(get_reconciliation_queue)],
) -> dict:
    status = cache.health(pending_retries=len(queue))
    return {
        "status": "ok",
        "cacheAgeSec": round(status.cache_age_seconds),
        **status.model_dump(mode="json", by_alias=True),
    }


@router.get("/ping")
async def ping() -> dict:
    return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}
