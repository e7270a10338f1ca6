"""Timestamp alignment and comparison result building: pure functions."""

from pricesync.domain.models.market import PairResult, PricePoint, SeriesData


def align_timeframes(
    series1: list[PricePoint] | None,
    series2: list[PricePoint] | None,
) -> tuple[list[PricePoint] | None, list[PricePoint] | None]:
    """Restrict both series to the timestamps they share.

    The outputs have equal length and identical timestamp sequences, ascending.
    If either input is missing, both are returned unchanged.
    """
    if series1 is None or series2 is None:
        return series1, series2

    prices1 = dict(series1)
    prices2 = dict(series2)
    common = sorted(prices1.keys() & prices2.keys())

    return [(ts, prices1[ts]) for ts in common], [(ts, prices2[ts]) for ts in common]


def build_pair_result(
    coin1: str,
    coin2: str,
    series1: list[PricePoint] | None,
    series2: list[PricePoint] | None,
) -> PairResult:
    """Comparison result from whichever series loaded; aligned when both did."""
    aligned1, aligned2 = align_timeframes(series1, series2)
    data = []
    if aligned1 is not None:
        data.append(SeriesData(name=coin1, prices=aligned1))
    if aligned2 is not None:
        data.append(SeriesData(name=coin2, prices=aligned2))
    return PairResult(coin1=coin1, coin2=coin2, data=data)


STALE_WARNING = "Served stale cached data due to error"
PLACEHOLDER_WARNING = "No data available, using placeholder"


def placeholder_result(coin1: str, coin2: str) -> PairResult:
    return PairResult(
        coin1=coin1,
        coin2=coin2,
        data=[SeriesData(name=coin1, prices=[]), SeriesData(name=coin2, prices=[])],
        warning=PLACEHOLDER_WARNING,
    )


def stale_result(result: PairResult) -> PairResult:
    """Copy of a cached result tagged as stale; the cached one is left untouched."""
    return result.model_copy(update={"warning": STALE_WARNING})
