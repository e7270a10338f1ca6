"""Tests for flat reporting rows: pure functions."""

import pytest

from pricesync.domain.models.market import PairResult, PreloadEntry, SeriesData
from pricesync.report.flatten import (
    flatten_comparison,
    flatten_single,
    flatten_with_pct_change,
    to_looker_timestamp,
)

JAN_1_2024 = 1704067200000  # 2024-01-01T00:00:00Z
JAN_2_2024 = JAN_1_2024 + 86_400_000


class TestLookerTimestamp:
    def test_format(self):
        assert to_looker_timestamp(JAN_1_2024) == "20240101000000"

    def test_seconds_preserved(self):
        assert to_looker_timestamp(JAN_1_2024 + 3_723_000) == "20240101010203"


class TestFlattenComparison:
    def test_rows_per_series(self):
        result = PairResult(
            coin1="bitcoin",
            coin2="ethereum",
            data=[
                SeriesData(name="bitcoin", prices=[(JAN_1_2024, 42000.0)]),
                SeriesData(name="ethereum", prices=[(JAN_1_2024, 2300.0)]),
            ],
        )

        rows = [row.model_dump() for row in flatten_comparison(result)]

        assert rows == [
            {"coin": "bitcoin", "timestamp": "20240101000000", "price": 42000.0},
            {"coin": "ethereum", "timestamp": "20240101000000", "price": 2300.0},
        ]

    def test_placeholder_yields_no_rows(self):
        result = PairResult(
            coin1="a", coin2="b", data=[SeriesData(name="a"), SeriesData(name="b")], warning="x"
        )
        assert flatten_comparison(result) == []


class TestFlattenWithPctChange:
    def test_relative_to_first_price(self):
        rows = flatten_with_pct_change("bitcoin", [(JAN_1_2024, 100.0), (JAN_2_2024, 150.0)])

        assert [row.pct_change for row in rows] == [0.0, pytest.approx(0.5)]
        assert rows[1].timestamp == "20240102000000"

    def test_skips_invalid_prices(self):
        rows = flatten_with_pct_change("bitcoin", [(JAN_1_2024, float("nan")), (JAN_2_2024, 80.0)])

        assert len(rows) == 1
        assert rows[0].pct_change == 0.0

    def test_string_timestamps_parsed(self):
        rows = flatten_with_pct_change("bitcoin", [("2024-01-01T00:00:00Z", 1.0), ("not a date", 2.0)])

        assert [row.timestamp for row in rows] == ["20240101000000"]

    def test_zero_first_price_contributes_nothing(self):
        assert flatten_with_pct_change("deadcoin", [(JAN_1_2024, 0.0), (JAN_2_2024, 1.0)]) == []

    def test_empty_series(self):
        assert flatten_with_pct_change("bitcoin", []) == []


class TestFlattenSingle:
    def test_entry_rows(self):
        entry = PreloadEntry(coin_id="solana", cached_at=0.0, name="solana", prices=[(JAN_1_2024, 100.0)])

        rows = flatten_single(entry)
        assert [(r.coin, r.timestamp, r.price) for r in rows] == [("solana", "20240101000000", 100.0)]

    def test_missing_entry(self):
        assert flatten_single(None) == []
