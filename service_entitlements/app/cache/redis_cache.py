"""
Redis caching layer for Entitlements Service.

Caches raw quota limit settings so repeated checks skip the settings table.
Every read and write swallows Redis errors after logging them; callers fall
through to storage on a miss.
"""

import json
from typing import Dict, Any, Optional
from datetime import datetime, timezone

import redis.asyncio as redis
from shared.logging import get_logger
from shared.errors import InfrastructureError


class LimitCache:
    """Redis cache for configured quota limits."""

    LIMIT_PREFIX = "quota_limit:"

    def __init__(self, redis_url: str, ttl_seconds: int = 300):
        self.redis_url = redis_url
        self.logger = get_logger("entitlements.cache.redis")
        self.redis: Optional[redis.Redis] = None

        self.min_ttl = 1
        self.max_ttl = 3600
        self.ttl_seconds = max(self.min_ttl, min(self.max_ttl, ttl_seconds))

    async def start(self):
        """Start the Redis cache."""
        try:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )

            await self.redis.ping()

            self.logger.info("Redis cache started", ttl_seconds=self.ttl_seconds)

        except Exception as e:
            self.logger.error("Failed to start Redis cache", error=str(e))
            raise InfrastructureError("Failed to connect to Redis", details={"error": str(e)})

    async def stop(self):
        """Stop the Redis cache."""
        if self.redis:
            await self.redis.close()
            self.logger.info("Redis cache stopped")

    async def get_limit(self, key: str) -> Optional[Dict[str, Any]]:
        """Get a cached setting entry.

        Returns ``{"value": <raw setting or None>}`` on a hit and ``None`` on a
        miss or any Redis error. A cached ``None`` value means the setting is
        absent from storage.
        """
        if self.redis is None:
            return None
        try:
            cached_data = await self.redis.get(self._limit_key(key))
            if not cached_data:
                return None

            data = json.loads(cached_data)
            self.logger.debug("Cache hit for limit", key=key)
            return {"value": data.get("value")}

        except Exception as e:
            self.logger.error("Error getting cached limit", key=key, error=str(e))
            return None

    async def set_limit(self, key: str, value: Optional[str]) -> bool:
        """Cache a raw setting value for the configured TTL."""
        if self.redis is None:
            return False
        try:
            data = {
                "value": value,
                "cached_at": datetime.now(timezone.utc).isoformat()
            }
            await self.redis.setex(self._limit_key(key), self.ttl_seconds, json.dumps(data))

            self.logger.debug("Cached limit", key=key, ttl=self.ttl_seconds)
            return True

        except Exception as e:
            self.logger.error("Error caching limit", key=key, error=str(e))
            return False

    async def invalidate_limit(self, key: str) -> bool:
        """Drop a cached limit after the setting changed."""
        if self.redis is None:
            return False
        try:
            deleted = await self.redis.delete(self._limit_key(key))
            self.logger.info("Invalidated cached limit", key=key, deleted=deleted)
            return True

        except Exception as e:
            self.logger.error("Error invalidating cached limit", key=key, error=str(e))
            return False

    def _limit_key(self, key: str) -> str:
        return f"{self.LIMIT_PREFIX}{key}"

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await self.redis.ping()
            return True
        except Exception:
            return False
