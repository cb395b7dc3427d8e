"""Redis client and the local-cache backup slots."""

import logging

from redis.asyncio import Redis

from applytrak.core.config import settings

logger = logging.getLogger(__name__)

# Async Redis client
_redis_client: Redis | None = None


async def get_redis() -> Redis:
    """Get or create async Redis client."""
    global _redis_client
    if _redis_client is None:
        _redis_client = Redis.from_url(
            settings.redis_url,
            decode_responses=True,
        )
    return _redis_client


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


class LocalBackupCache:
    """Rotating slots of serialized local-cache snapshots.

    The newest snapshot is kept at the head of a Redis list. Only the
    newest ``slots`` entries survive a push, and the whole list expires
    after ``ttl_seconds`` without a new push.
    """

    KEY = "applytrak:local_backups"

    def __init__(
        self,
        redis: Redis | None = None,
        slots: int | None = None,
        ttl_seconds: int | None = None,
    ):
        self._redis = redis
        self.slots = slots or settings.local_cache_slots
        if ttl_seconds is None:
            ttl_seconds = settings.backup_max_age_days * 86400
        self.ttl_seconds = ttl_seconds

    async def _client(self) -> Redis:
        if self._redis is None:
            self._redis = await get_redis()
        return self._redis

    async def push(self, payload: str) -> None:
        """Store a serialized snapshot as the newest slot."""
        redis = await self._client()
        pipe = redis.pipeline()
        pipe.lpush(self.KEY, payload)
        pipe.ltrim(self.KEY, 0, self.slots - 1)
        if self.ttl_seconds > 0:
            pipe.expire(self.KEY, self.ttl_seconds)
        await pipe.execute()
        logger.debug(f"Pushed local backup ({len(payload)} bytes, {self.slots} slots)")

    async def entries(self) -> list[str]:
        """Return serialized snapshots, newest first."""
        redis = await self._client()
        return await redis.lrange(self.KEY, 0, -1)

    async def remove(self, payload: str) -> int:
        """Remove one serialized snapshot, returning how many slots were freed."""
        redis = await self._client()
        return await redis.lrem(self.KEY, 0, payload)

    async def clear(self) -> None:
        """Drop every local-cache slot."""
        redis = await self._client()
        await redis.delete(self.KEY)
        logger.info("Cleared local backup cache")
