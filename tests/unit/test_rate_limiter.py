from typing import Dict, Optional

import pytest
from fastapi import Depends, FastAPI
from httpx import AsyncClient, ASGITransport

from linked.redis import RedisClient
from linked.services.rate_limiter import RateLimiter


class FakeRedis:
    def __init__(self):
        self.counts: Dict[str, int] = {}

    async def incr_window(self, key: str, window: int) -> Optional[int]:
        self.counts[key] = self.counts.get(key, 0) + 1
        return self.counts[key]


def _app(redis_client) -> FastAPI:
    app = FastAPI()
    app.state.redis = redis_client

    @app.post("/limited", dependencies=[Depends(RateLimiter(requests=2, window=60))])
    async def limited():
        return {"ok": True}

    return app


@pytest.mark.asyncio
async def test_requests_over_limit_are_rejected():
    fake = FakeRedis()
    async with AsyncClient(transport=ASGITransport(app=_app(fake)), base_url="http://test") as client:
        assert (await client.post("/limited")).status_code == 200
        assert (await client.post("/limited")).status_code == 200
        response = await client.post("/limited")

    assert response.status_code == 429
    assert response.json() == {"detail": "Rate limit exceeded"}


@pytest.mark.asyncio
async def test_limit_is_per_client_ip():
    fake = FakeRedis()
    async with AsyncClient(transport=ASGITransport(app=_app(fake)), base_url="http://test") as client:
        for _ in range(2):
            await client.post("/limited", headers={"x-forwarded-for": "198.51.100.1"})
        response = await client.post("/limited", headers={"x-forwarded-for": "198.51.100.2"})

    assert response.status_code == 200


@pytest.mark.asyncio
@pytest.mark.parametrize("redis_client", [None, RedisClient(None)])
async def test_limiter_allows_requests_without_redis(redis_client):
    async with AsyncClient(transport=ASGITransport(app=_app(redis_client)), base_url="http://test") as client:
        for _ in range(5):
            assert (await client.post("/limited")).status_code == 200
