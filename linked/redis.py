import logging
from typing import Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)

class RedisClient:
    """Optional Redis connection. Every call is a no-op when not connected."""

    def __init__(self, url: Optional[str] = None):
        self.url = url
        self.client: Optional[redis.Redis] = None

    async def connect(self):
        if not self.url:
            logger.info("REDIS_URL not set, rate limiting disabled")
            return
        self.client = redis.from_url(
            self.url,
            encoding="utf-8",
            decode_responses=True
        )
        await self.client.ping()

    async def close(self):
        if self.client:
            await self.client.aclose()
            self.client = None

    async def incr_window(self, key: str, window: int) -> Optional[int]:
        if not self.client:
            return None
        try:
            count = await self.client.incr(key)
            if count == 1:
                await self.client.expire(key, window)
            return count
        except redis.RedisError as e:
            logger.error(f"Redis error on {key}: {e}")
            return None
