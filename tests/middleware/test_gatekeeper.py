"""Tests for the per-IP request guard."""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from threadline.middleware.rate_limit import GatekeeperMiddleware
from threadline.utils.rate_limiter import RequestThrottle


class TestRequestThrottle:
    def test_ceiling_is_inclusive(self):
        throttle = RequestThrottle(max_requests=2)
        throttle.hit("ip")
        throttle.hit("ip")
        assert not throttle.is_blocked("ip")
        throttle.hit("ip")
        assert throttle.is_blocked("ip")

    def test_keys_are_independent(self):
        throttle = RequestThrottle(max_requests=1)
        throttle.hit("a")
        throttle.hit("a")
        assert throttle.is_blocked("a")
        assert not throttle.is_blocked("b")

    def test_reset(self):
        throttle = RequestThrottle(max_requests=1)
        throttle.hit("a")
        throttle.hit("a")
        throttle.reset()
        assert throttle.count("a") == 0


def _app(throttle, trusted_proxies=frozenset()):
    app = FastAPI()
    app.add_middleware(GatekeeperMiddleware, throttle=throttle, trusted_proxies=trusted_proxies)

    @app.post("/")
    async def root():
        return {"ok": True}

    return app


class TestGatekeeper:
    @pytest.mark.asyncio
    async def test_rejects_after_ceiling(self):
        throttle = RequestThrottle(max_requests=2)
        transport = ASGITransport(app=_app(throttle))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            first = await client.post("/")
            await client.post("/")
            third = await client.post("/")

        assert first.status_code == 200
        assert first.headers["X-RateLimit-Remaining"] == "1"
        assert third.status_code == 429
        assert third.json() == {"code": 1000, "message": "Too Many Requests"}

    @pytest.mark.asyncio
    async def test_rotating_forwarded_for_is_ignored_from_untrusted_peer(self):
        throttle = RequestThrottle(max_requests=2)
        transport = ASGITransport(app=_app(throttle))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            statuses = [
                (await client.post("/", headers={"X-Forwarded-For": f"203.0.113.{i}"})).status_code
                for i in range(4)
            ]

        assert statuses == [200, 200, 429, 429]
        assert throttle.count("127.0.0.1") == 4
        assert throttle.count("203.0.113.0") == 0

    @pytest.mark.asyncio
    async def test_forwarded_for_honoured_from_trusted_proxy(self):
        throttle = RequestThrottle(max_requests=1)
        transport = ASGITransport(app=_app(throttle, frozenset({"127.0.0.1"})))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            await client.post("/", headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})
        assert throttle.count("203.0.113.7") == 1
        assert throttle.count("127.0.0.1") == 0
