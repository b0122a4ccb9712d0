import logging
import time

from fastapi import Request, HTTPException

from ..config import settings
from ..observability import RATE_LIMITED_TOTAL
from .client_info import get_client_ip

logger = logging.getLogger(__name__)

class RateLimiter:
    """Fixed-window limit per client IP and route, backed by Redis.

    Allows the request whenever Redis is not configured or unreachable.
    """

    def __init__(self, requests: int = None, window: int = None):
        self.requests = requests or settings.RATE_LIMIT_REQUESTS
        self.window = window or settings.RATE_LIMIT_WINDOW

    async def __call__(self, request: Request):
        redis_client = getattr(request.app.state, "redis", None)
        if redis_client is None:
            return

        client_ip = get_client_ip(request.headers) or (request.client.host if request.client else "unknown")
        current_window = int(time.time() / self.window)
        key = f"rate:{client_ip}:{request.url.path}:{request.method}:{current_window}"

        count = await redis_client.incr_window(key, self.window)
        if count is not None and count > self.requests:
            RATE_LIMITED_TOTAL.inc()
            logger.warning(f"Rate limit exceeded for {client_ip} on {request.url.path}")
            raise HTTPException(status_code=429, detail="Rate limit exceeded")
