import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from pricesync.cache.manager import CacheManager


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    """Records requested delays and advances the clock instead of waiting."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.clock.advance(seconds)
        await asyncio.sleep(0)


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def sleep(clock) -> FakeSleep:
    return FakeSleep(clock)


@pytest.fixture()
def cache(clock) -> CacheManager:
    return CacheManager(clock=clock)


@pytest.fixture()
def client():
    """CoinGeckoClient stand-in; tests set return values / side effects."""
    mock = MagicMock()
    mock.fetch_markets = AsyncMock()
    mock.fetch_daily_series = AsyncMock()
    return mock
