"""Tests for ThrottledTransport: spacing, FIFO order and error mapping."""

import asyncio

import httpx
import pytest

from pricesync.exceptions import UpstreamError
from pricesync.infra.http.throttled_transport import ThrottledTransport


def _transport(handler, clock, sleep, min_interval: float = 3.0) -> ThrottledTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ThrottledTransport(min_interval=min_interval, client=client, clock=clock, sleep=sleep)


class TestThrottling:
    async def test_first_call_not_delayed(self, clock, sleep):
        transport = _transport(lambda request: httpx.Response(200, json={"ok": True}), clock, sleep)

        body = await transport.get("https://example.test/a")
        assert body == {"ok": True}
        assert sleep.calls == []

    async def test_back_to_back_calls_spaced_by_interval(self, clock, sleep):
        transport = _transport(lambda request: httpx.Response(200, json=[]), clock, sleep)

        await transport.get("https://example.test/a")
        clock.advance(1.0)
        await transport.get("https://example.test/b")

        assert sleep.calls == [pytest.approx(2.0)]

    async def test_no_wait_after_interval_elapsed(self, clock, sleep):
        transport = _transport(lambda request: httpx.Response(200, json=[]), clock, sleep)

        await transport.get("https://example.test/a")
        clock.advance(10.0)
        await transport.get("https://example.test/b")

        assert sleep.calls == []

    async def test_concurrent_callers_served_in_arrival_order_one_at_a_time(self, clock, sleep):
        order: list[str] = []
        active = 0
        max_active = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            order.append(request.url.path)
            await asyncio.sleep(0)
            active -= 1
            return httpx.Response(200, json={})

        transport = _transport(handler, clock, sleep)
        await asyncio.gather(*(transport.get(f"https://example.test/{name}") for name in "abc"))

        assert order == ["/a", "/b", "/c"]
        assert max_active == 1
        assert sleep.calls == [pytest.approx(3.0), pytest.approx(3.0)]


class TestErrorMapping:
    async def test_non_2xx_carries_status(self, clock, sleep):
        transport = _transport(lambda request: httpx.Response(429, json={"error": "slow down"}), clock, sleep)

        with pytest.raises(UpstreamError) as exc_info:
            await transport.get("https://example.test/a")
        assert exc_info.value.status == 429
        assert exc_info.value.is_transient

    async def test_not_found(self, clock, sleep):
        transport = _transport(lambda request: httpx.Response(404), clock, sleep)

        with pytest.raises(UpstreamError) as exc_info:
            await transport.get("https://example.test/a")
        assert exc_info.value.is_not_found
        assert not exc_info.value.is_transient

    async def test_timeout_has_no_status(self, clock, sleep):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        transport = _transport(handler, clock, sleep)
        with pytest.raises(UpstreamError) as exc_info:
            await transport.get("https://example.test/a")
        assert exc_info.value.status is None
        assert exc_info.value.is_transient

    async def test_malformed_json_is_transient(self, clock, sleep):
        transport = _transport(lambda request: httpx.Response(200, text="<html>oops</html>"), clock, sleep)

        with pytest.raises(UpstreamError) as exc_info:
            await transport.get("https://example.test/a")
        assert exc_info.value.status is None

    async def test_params_forwarded(self, clock, sleep):
        seen = {}

        def handler(request):
            seen.update(request.url.params)
            return httpx.Response(200, json={})

        transport = _transport(handler, clock, sleep)
        await transport.get("https://example.test/a", params={"days": 365, "interval": "daily"})
        assert seen == {"days": "365", "interval": "daily"}

    async def test_undecodable_body_is_transient(self, clock, sleep):
        def handler(request):
            return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip at all")

        transport = _transport(handler, clock, sleep)
        with pytest.raises(UpstreamError) as exc_info:
            await transport.get("https://example.test/a")
        assert exc_info.value.status is None
        assert exc_info.value.is_transient

    async def test_invalid_url_is_not_retried(self, clock, sleep):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={})

        transport = _transport(handler, clock, sleep)
        with pytest.raises(UpstreamError) as exc_info:
            await transport.get("https://example.test/coins/bit\x01coin/market_chart")
        assert exc_info.value.status is None
        assert not exc_info.value.is_transient
        assert calls == []
