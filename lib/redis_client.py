"""Redis client module for caching link resolutions"""
import json
from typing import Any, Optional

import redis.asyncio as redis

from lib.logging import get_logger

logger = get_logger(__name__)


class RedisClient:
    """Async Redis client; every operation degrades to a no-op when Redis is down"""

    def __init__(self, url: str):
        self.url = url
        self.redis: Optional[redis.Redis] = None
        self.connected = False

    async def connect(self):
        """Initialize Redis connection"""
        try:
            self.redis = redis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
                socket_keepalive=True
            )
            # Test connection
            await self.redis.ping()
            self.connected = True
            logger.info("Connected to Redis")
            return True
        except (redis.RedisError, OSError) as e:
            logger.warning(f"Redis not available: {e}")
            self.connected = False
            return False

    async def disconnect(self):
        """Close Redis connection"""
        if self.redis:
            await self.redis.aclose()
            self.connected = False
            logger.info("Redis connection closed")

    async def get(self, key: str) -> Optional[Any]:
        """Get a JSON value from cache"""
        if not self.connected:
            return None
        try:
            value = await self.redis.get(key)
            return json.loads(value) if value else None
        except (redis.RedisError, ValueError) as e:
            logger.error(f"Redis get error: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        """Set a JSON value in cache with TTL"""
        if not self.connected:
            return False
        try:
            await self.redis.setex(key, ttl, json.dumps(value))
            return True
        except redis.RedisError as e:
            logger.error(f"Redis set error: {e}")
            return False

    async def ping(self) -> bool:
        """Check if Redis is responsive"""
        if not self.connected:
            return False
        try:
            return await self.redis.ping()
        except (redis.RedisError, OSError):
            return False
