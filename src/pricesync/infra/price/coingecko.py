"""CoinGecko market-data client: retrying fetcher plus the two endpoints we use."""

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from typing import Any

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
    wait_random,
)

from pricesync.domain.models.market import PricePoint, SnapshotRow
from pricesync.exceptions import UpstreamError
from pricesync.infra.http.throttled_transport import ThrottledTransport

logger = logging.getLogger(__name__)

BASE_URL = "https://api.coingecko.com/api/v3"

ONE_YEAR_DAYS = 365
MAX_RANGE = "max"  # "all available history" sentinel for the days param
MARKETS_PAGE_SIZE = 250

MAX_ATTEMPTS = 30
BACKOFF_STEP = 0.5  # seconds added per failed attempt
BACKOFF_CAP = 8.0
BACKOFF_JITTER = 0.3


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, UpstreamError) and exc.is_transient


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _as_float(value: Any) -> float | None:
    return float(value) if _is_number(value) else None


def _as_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def clean_prices(raw: Any) -> list[PricePoint]:
    """Keep only well-formed ``[timestamp_ms, price]`` pairs; drop everything else silently."""
    points: list[PricePoint] = []
    if not isinstance(raw, list):
        return points
    for point in raw:
        if not isinstance(point, (list, tuple)) or len(point) != 2:
            continue
        ts, price = point
        if not _is_number(ts) or not _is_number(price):
            continue
        points.append((int(ts), float(price)))
    return points


def parse_market_rows(body: Any) -> list[SnapshotRow]:
    """Normalize a /coins/markets body. A malformed row is skipped, never raised."""
    if not isinstance(body, list):
        raise UpstreamError(f"Unexpected markets body type: {type(body).__name__}")

    rows: list[SnapshotRow] = []
    for coin in body:
        if not isinstance(coin, dict):
            continue
        coin_id = _as_str(coin.get("id"))
        if coin_id is None:
            logger.debug("Skipping market row without id: %r", coin)
            continue
        rows.append(SnapshotRow(
            id=coin_id,
            symbol=_as_str(coin.get("symbol")),
            name=_as_str(coin.get("name")),
            current_price=_as_float(coin.get("current_price")),
            market_cap=_as_float(coin.get("market_cap")),
            total_volume=_as_float(coin.get("total_volume")),
            price_change_percentage_24h=_as_float(coin.get("price_change_percentage_24h")),
        ))
    return rows


class CoinGeckoClient:
    """Fetch market snapshots and daily price series with retry and range fallback."""

    def __init__(
        self,
        transport: ThrottledTransport,
        base_url: str = BASE_URL,
        api_key: str = "",
        vs_currency: str = "usd",
        max_attempts: int = MAX_ATTEMPTS,
        snapshot_timeout: float = 15.0,
        series_timeout: float = 20.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._vs_currency = vs_currency
        self._max_attempts = max_attempts
        self._snapshot_timeout = snapshot_timeout
        self._series_timeout = series_timeout
        self._sleep = sleep

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception(_is_transient),
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_incrementing(start=BACKOFF_STEP, increment=BACKOFF_STEP, max=BACKOFF_CAP)
            + wait_random(0, BACKOFF_JITTER),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def fetch_with_retry(self, url: str, params: dict[str, Any], timeout: float) -> Any:
        """GET through the throttled transport, retrying 429s and network errors.

        Other statuses fail immediately. A 404 on the one-year range gets exactly
        one extra call with ``days=max``, since young coins lack a full year of
        history; if that also fails the original error is raised.
        """
        try:
            return await self._retrying()(self._transport.get, url, params, timeout=timeout)
        except UpstreamError as exc:
            if exc.is_not_found and params.get("days") == ONE_YEAR_DAYS:
                logger.warning("404 for %s, falling back to days=%s", url, MAX_RANGE)
                try:
                    return await self._transport.get(url, {**params, "days": MAX_RANGE}, timeout=timeout)
                except UpstreamError as fallback_exc:
                    logger.warning("Range fallback failed for %s: %s", url, fallback_exc)
            raise

    def _with_key(self, params: dict[str, Any]) -> dict[str, Any]:
        if self._api_key:
            params["x_cg_demo_api_key"] = self._api_key
        return params

    def market_chart_url(self, coin_id: str) -> str:
        return f"{self._base_url}/coins/{coin_id}/market_chart"

    async def fetch_markets(self) -> list[SnapshotRow]:
        """First page of the market list, market cap descending."""
        params = self._with_key({
            "vs_currency": self._vs_currency,
            "order": "market_cap_desc",
            "per_page": MARKETS_PAGE_SIZE,
            "page": 1,
            "sparkline": "false",
        })
        body = await self.fetch_with_retry(
            f"{self._base_url}/coins/markets", params, timeout=self._snapshot_timeout
        )
        return parse_market_rows(body)

    async def fetch_daily_series(self, coin_id: str) -> list[PricePoint]:
        """One year of daily prices for a coin (or all history if the year is unavailable)."""
        params = self._with_key({
            "vs_currency": self._vs_currency,
            "days": ONE_YEAR_DAYS,
            "interval": "daily",
        })
        body = await self.fetch_with_retry(
            self.market_chart_url(coin_id), params, timeout=self._series_timeout
        )
        if not isinstance(body, dict):
            raise UpstreamError(f"Unexpected market_chart body for {coin_id}")
        return clean_prices(body.get("prices"))
