"""Redis client and the Redis-backed rate-limit counter."""

import math
import time
from typing import Optional
from uuid import uuid4

import redis.asyncio as redis
import structlog

from blog_auth.config import get_settings
from blog_auth.services.abuse_guard import WindowState

logger = structlog.get_logger(__name__)

# Global Redis client
_redis_client: Optional[redis.Redis] = None

KEY_PREFIX = "rate_limit:"


async def get_redis() -> Optional[redis.Redis]:
    """Get or create the Redis client.

    Returns:
        Redis client or None if connection fails (graceful degradation)
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    settings = get_settings()

    try:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        await _redis_client.ping()
        logger.info("redis_connected", url=settings.redis_url.split("@")[-1])
        return _redis_client
    except Exception as e:
        logger.warning("redis_connection_failed", error=str(e))
        _redis_client = None
        return None


async def close_redis() -> None:
    """Close the Redis connection."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("redis_connection_closed")


class RedisRateLimitBackend:
    """Sliding log kept in one sorted set per key, shared across instances.

    Each request is added with its timestamp as score; entries older than
    the window are trimmed first. If Redis is unreachable requests are
    allowed through and the failure is logged.
    """

    def __init__(self, clock=time.time):
        self._clock = clock

    async def hit(self, key: str, limit: int, window_seconds: int) -> WindowState:
        client = await get_redis()
        if client is None:
            return WindowState(allowed=True, remaining=-1, retry_after=0)

        redis_key = f"{KEY_PREFIX}{key}"
        now = self._clock()
        member = f"{now}:{uuid4().hex}"

        try:
            async with client.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(redis_key, 0, now - window_seconds)
                pipe.zadd(redis_key, {member: now})
                pipe.zcard(redis_key)
                pipe.expire(redis_key, window_seconds)
                _, _, count, _ = await pipe.execute()

            if count <= limit:
                return WindowState(allowed=True, remaining=limit - count, retry_after=0)

            # Over the limit: this request does not occupy a slot
            await client.zrem(redis_key, member)
            oldest = await client.zrange(redis_key, 0, 0, withscores=True)
            oldest_score = oldest[0][1] if oldest else now
            retry_after = max(1, math.ceil(oldest_score + window_seconds - now))
            return WindowState(allowed=False, remaining=0, retry_after=retry_after)

        except Exception as e:
            logger.warning("redis_rate_limit_failed", error=str(e), key=key)
            return WindowState(allowed=True, remaining=-1, retry_after=0)

    async def reset(self, key: Optional[str] = None) -> None:
        client = await get_redis()
        if client is None:
            return

        try:
            if key is not None:
                await client.delete(f"{KEY_PREFIX}{key}")
                return
            async for redis_key in client.scan_iter(match=f"{KEY_PREFIX}*"):
                await client.delete(redis_key)
        except Exception as e:
            logger.warning("redis_rate_limit_reset_failed", error=str(e))
