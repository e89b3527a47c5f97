"""
Redis Cache Service for caching shipping configuration.
Zones and methods change rarely but are read on every quote.
"""
import json
from typing import Optional, Any, List
from redis.asyncio import Redis


class CacheService:
    """Service for caching operations using Redis."""

    _redis: Optional[Redis] = None

    # Default TTL values (in seconds)
    TTL_SHIPPING_CONFIG = 300   # 5 minutes - admins expect edits to show up quickly
    TTL_DEFAULT = 300

    # Cache keys
    KEY_SHIPPING_ZONES = "shipping:zones"
    KEY_SHIPPING_METHODS = "shipping:methods:active"

    @classmethod
    async def get_redis(cls) -> Redis:
        """Get or create Redis connection from settings."""
        if cls._redis is None:
            from storefront.app.core.settings import get_settings

            settings = get_settings()
            cls._redis = Redis(
                host=settings.REDIS_HOST,
                port=settings.REDIS_PORT,
                db=settings.REDIS_DB,
                decode_responses=True
            )
        return cls._redis

    @classmethod
    async def close(cls):
        """Close Redis connection."""
        if cls._redis:
            await cls._redis.aclose()
            cls._redis = None

    def __init__(self, redis: Redis):
        self.redis = redis

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache."""
        data = await self.redis.get(key)
        if data:
            return json.loads(data)
        return None

    async def set(self, key: str, value: Any, ttl: int = TTL_DEFAULT):
        """Set value in cache with TTL."""
        await self.redis.set(key, json.dumps(value, ensure_ascii=False), ex=ttl)

    async def delete(self, key: str):
        """Delete value from cache."""
        await self.redis.delete(key)

    # ----- Shipping configuration -----

    async def get_shipping_zones(self) -> Optional[List[dict]]:
        return await self.get(self.KEY_SHIPPING_ZONES)

    async def set_shipping_zones(self, zones: List[dict], ttl: Optional[int] = None):
        await self.set(self.KEY_SHIPPING_ZONES, zones, ttl or self.TTL_SHIPPING_CONFIG)

    async def get_shipping_methods(self) -> Optional[List[dict]]:
        return await self.get(self.KEY_SHIPPING_METHODS)

    async def set_shipping_methods(self, methods: List[dict], ttl: Optional[int] = None):
        await self.set(self.KEY_SHIPPING_METHODS, methods, ttl or self.TTL_SHIPPING_CONFIG)

    async def invalidate_shipping_config(self):
        """Invalidate cached zones and methods."""
        await self.delete(self.KEY_SHIPPING_ZONES)
        await self.delete(self.KEY_SHIPPING_METHODS)
