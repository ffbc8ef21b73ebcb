"""Redis client helpers.

Clients are created by process entrypoints and passed into the queue and rate
limiter; nothing in the pipeline core reaches for a module-level client.
"""

import logging
from typing import Any, Awaitable, cast

from redis.asyncio import Redis

logger = logging.getLogger(__name__)


def create_redis_client(redis_url: str) -> Redis:
    """Create a Redis client with string responses."""
    return Redis.from_url(redis_url, decode_responses=True)


class RedisQueueClient:
    """Typed list and sorted-set operations over one Redis client."""

    def __init__(self, client: Redis) -> None:
        self._client = client

    async def llen(self, key: str) -> int:
        """Return queue length."""
        value = await cast(Awaitable[int], self._client.llen(key))
        return int(value)

    async def rpush(self, key: str, payload: str) -> int:
        """Push payload to the queue tail."""
        value = await cast(Awaitable[int], self._client.rpush(key, payload))
        return int(value)

    async def blpop(self, key: str, *, timeout: int) -> tuple[str, str] | None:
        """Pop one payload from queue head."""
        raw = await cast(
            Awaitable[list[Any] | None],
            self._client.blpop([key], timeout=timeout),
        )
        if not raw or len(raw) < 2:
            return None
        return str(raw[0]), str(raw[1])

    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        """Drop sorted-set members scored inside [min_score, max_score]."""
        value = await cast(
            Awaitable[int],
            self._client.zremrangebyscore(key, min_score, max_score),
        )
        return int(value)

    async def zcard(self, key: str) -> int:
        """Return sorted-set cardinality."""
        value = await cast(Awaitable[int], self._client.zcard(key))
        return int(value)

    async def zadd(self, key: str, member: str, score: float) -> int:
        """Add one member with a score."""
        value = await cast(Awaitable[int], self._client.zadd(key, {member: score}))
        return int(value)

    async def oldest_score(self, key: str) -> float | None:
        """Return the lowest score in a sorted set."""
        raw = await cast(
            Awaitable[list[tuple[str, float]]],
            self._client.zrange(key, 0, 0, withscores=True),
        )
        if not raw:
            return None
        return float(raw[0][1])

    async def expire(self, key: str, seconds: int) -> bool:
        """Set a key TTL."""
        return bool(await cast(Awaitable[bool], self._client.expire(key, seconds)))

    async def aclose(self) -> None:
        """Close client connections."""
        await self._client.aclose()
        logger.info("Redis connection closed")
