"""Flat row tables for the reporting tool: pure functions, no I/O.

The reporting tool wants one row per (coin, timestamp) with timestamps
rendered as ``YYYYMMDDHHMMSS`` in UTC.
"""

import math
from datetime import datetime, timezone
from typing import Any, Iterable

from pydantic import BaseModel

from pricesync.domain.models.market import PairResult, PreloadEntry


class FlatPriceRow(BaseModel):
    coin: str
    timestamp: str
    price: float


class FlatChangeRow(FlatPriceRow):
    pct_change: float  # decimal form, relative to the first valid price


def to_looker_timestamp(ts_ms: int) -> str:
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc).strftime("%Y%m%d%H%M%S")


def _valid_price(price: Any) -> bool:
    return isinstance(price, (int, float)) and not isinstance(price, bool) and not math.isnan(price)


def _parse_timestamp(ts: Any) -> int | None:
    """Epoch milliseconds from a raw number or an ISO-8601 string; None if unusable."""
    if isinstance(ts, bool):
        return None
    if isinstance(ts, (int, float)):
        return int(ts) if math.isfinite(ts) else None
    if isinstance(ts, str):
        try:
            parsed = datetime.fromisoformat(ts.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp() * 1000)
    return None


def _format(ts: Any) -> str | None:
    ts_ms = _parse_timestamp(ts)
    if ts_ms is None:
        return None
    try:
        return to_looker_timestamp(ts_ms)
    except (OverflowError, OSError, ValueError):
        return None


def _flatten(name: str, prices: Iterable[Any]) -> list[FlatPriceRow]:
    rows: list[FlatPriceRow] = []
    for ts, price in prices:
        if not _valid_price(price):
            continue
        formatted = _format(ts)
        if formatted is None:
            continue
        rows.append(FlatPriceRow(coin=name, timestamp=formatted, price=price))
    return rows


def flatten_comparison(result: PairResult) -> list[FlatPriceRow]:
    """One row per price point of every series in a comparison."""
    rows: list[FlatPriceRow] = []
    for series in result.data:
        rows.extend(_flatten(series.name, series.prices))
    return rows


def flatten_single(entry: PreloadEntry | None) -> list[FlatPriceRow]:
    if entry is None:
        return []
    return _flatten(entry.name, entry.prices)


def flatten_with_pct_change(name: str, prices: Iterable[Any]) -> list[FlatChangeRow]:
    """Rows with ``pct_change`` from the first valid price.

    A coin whose first valid price is missing or zero contributes no rows.
    """
    prices = list(prices)
    first_price = next((price for _, price in prices if _valid_price(price)), None)
    if not first_price:
        return []

    return [
        FlatChangeRow(
            coin=row.coin,
            timestamp=row.timestamp,
            price=row.price,
            pct_change=(row.price - first_price) / first_price,
        )
        for row in _flatten(name, prices)
    ]
