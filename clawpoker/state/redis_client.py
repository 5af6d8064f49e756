"""Async Redis client wrapper."""
from __future__ import annotations
from typing import Optional
from redis.asyncio import Redis, from_url

from clawpoker.config import config
from clawpoker.utils.logger import get_logger

logger = get_logger(__name__)


class RedisClient:
    """Shared async Redis connection."""
    
    _instance: Optional["RedisClient"] = None
    _redis: Optional[Redis] = None
    
    def __new__(cls) -> "RedisClient":
        """Singleton pattern for Redis client."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance
    
    async def connect(self) -> None:
        """Connect to Redis."""
        if self._redis is None:
            self._redis = from_url(
                config.redis_url,
                encoding="utf-8",
                decode_responses=True
            )
            logger.info(f"Connected to Redis at {config.redis_url}")
    
    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("Disconnected from Redis")
    
    @property
    def connected(self) -> bool:
        return self._redis is not None
    
    @property
    def redis(self) -> Redis:
        """Get Redis connection, raise if not connected."""
        if self._redis is None:
            raise RuntimeError("Redis not connected. Call connect() first.")
        return self._redis
    
    async def get(self, key: str) -> Optional[str]:
        """Get a string value."""
        return await self.redis.get(key)
    
    async def smembers(self, key: str) -> set[str]:
        """Get all members of a set."""
        return await self.redis.smembers(key)
    
    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        """Get a range of list elements."""
        return await self.redis.lrange(key, start, stop)


# Global instance
redis_client = RedisClient()
