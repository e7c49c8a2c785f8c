"""
Redis-backed cache for presence and published public keys.

Every operation degrades to a no-op when Redis is not configured or not
reachable, so the relay keeps working without a cache.
"""
import json
import logging
from typing import Any, Optional

from redis import asyncio as aioredis

from chat_relay.config import Settings

logger = logging.getLogger(__name__)


class RedisCache:
    """
    Thin async wrapper around a Redis client.

    Dicts and lists are stored as JSON; other values are stored as given.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.redis: Optional[aioredis.Redis] = None

    @property
    def enabled(self) -> bool:
        return self.redis is not None

    async def connect(self) -> None:
        """Open the client and ping it; leaves the cache disabled on failure."""
        if not self.settings.redis_url:
            logger.info("No Redis URL provided - running without Redis cache")
            self.redis = None
            return

        try:
            self.redis = aioredis.from_url(
                self.settings.redis_url,
                password=self.settings.redis_password or None,
                encoding="utf-8",
                decode_responses=True,
                max_connections=50,
            )
            await self.redis.ping()
            logger.info("Connected to Redis successfully")
        except Exception as e:
            logger.warning(f"Could not connect to Redis: {e} - running without cache")
            self.redis = None

    async def disconnect(self) -> None:
        if self.redis:
            await self.redis.aclose()
            self.redis = None

    async def get(self, key: str) -> Optional[Any]:
        """
        Read a key.

        Returns:
            The decoded JSON value, the raw string if it is not JSON, or
            None when the key is absent or the cache is disabled
        """
        if not self.redis:
            return None

        raw = await self.redis.get(key)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return raw

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Write a key, expiring after ``ttl`` seconds when given.

        Returns:
            False when the cache is disabled
        """
        if not self.redis:
            return False

        if isinstance(value, (dict, list)):
            value = json.dumps(value)

        if ttl:
            return bool(await self.redis.setex(key, ttl, value))
        return bool(await self.redis.set(key, value))

    async def delete(self, key: str) -> bool:
        """Remove a key. Returns True if one was removed."""
        if not self.redis:
            return False
        return bool(await self.redis.delete(key))

    async def set_user_presence(self, user_id: int, status: str) -> bool:
        """Record a user as online or offline for ``cache_presence_ttl`` seconds."""
        return await self.set(
            f"presence:{user_id}",
            {"status": status},
            ttl=self.settings.cache_presence_ttl
        )
