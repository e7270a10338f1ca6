import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from pricesync.exceptions import UpstreamError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class ThrottledTransport:
    """Async HTTP GET with fixed-interval throttling.

    Callers are served one at a time in arrival order; the lock is held for
    the whole request so there is never more than one upstream call in flight.
    """

    def __init__(
        self,
        min_interval: float = 3.0,
        client: httpx.AsyncClient | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._min_interval = min_interval
        self._client = client or httpx.AsyncClient()
        self._clock = clock
        self._sleep = sleep
        self._last_call_at: float | None = None
        self._lock = asyncio.Lock()

    async def _wait_for_slot(self) -> None:
        if self._last_call_at is not None:
            wait = max(0.0, self._min_interval - (self._clock() - self._last_call_at))
            if wait > 0:
                logger.debug("Throttling upstream call for %.2fs", wait)
                await self._sleep(wait)
        self._last_call_at = self._clock()

    async def get(self, url: str, params: dict[str, Any] | None = None, timeout: float = 20.0) -> Any:
        """GET ``url`` and return the parsed JSON body, or raise UpstreamError."""
        async with self._lock:
            await self._wait_for_slot()
            try:
                response = await self._client.get(url, params=params, timeout=timeout)
            except httpx.InvalidURL as exc:
                # the same request would fail again
                raise UpstreamError(f"Invalid request URL {url!r}: {exc}", transient=False) from exc
            except httpx.HTTPError as exc:
                raise UpstreamError(f"{type(exc).__name__}: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise UpstreamError(
                f"HTTP {response.status_code} for {url}", status=response.status_code
            )
        try:
            return response.json()
        except (ValueError, httpx.DecodingError) as exc:
            raise UpstreamError(f"Malformed JSON body from {url}") from exc

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ThrottledTransport":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
