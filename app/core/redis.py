# ============================================================================
# Redis Connection
# ============================================================================
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


def create_redis_client(url: str) -> redis.Redis:
    return redis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
    )


class RedisCache:
    """Redis caching utility"""

    def __init__(self, client: redis.Redis):
        self.client = client

    async def ping(self) -> bool:
        return await self.client.ping()

    async def close(self) -> None:
        await self.client.aclose()

    # Rate limiting
    async def check_rate_limit(self, key: str, limit: int, window: int = 900) -> tuple[bool, int]:
        """Check if rate limit exceeded. Returns (allowed, remaining).

        Fails open: when Redis is unreachable the request is allowed and a
        warning is logged.
        """
        try:
            current = await self.client.incr(key)
            if current == 1:
                await self.client.expire(key, window)
        except RedisError as e:
            logger.warning(f"⚠️ Rate limiter unavailable, allowing request: {e}")
            return True, limit

        if current > limit:
            return False, 0

        return True, limit - current
