# Exact-hash result cache
# services/cache_service.py
"""
Redis-backed exact-hash cache of query responses with fallback to in-memory caching.
Keeps answering from process memory when Redis is unavailable.
"""

import asyncio
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
import redis.asyncio as redis
import structlog
from models.responses import QueryResponse
from services.exceptions import CacheFailure
from services.interfaces import ExactCache
from utils.config import settings


logger = structlog.get_logger()


class InMemoryCache:
    """LRU store of serialized responses with per-entry expiry"""

    def __init__(self, max_size: int = 1000):
        self.cache: "OrderedDict[str, Tuple[str, Optional[datetime]]]" = OrderedDict()
        self.max_size = max_size
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            if key not in self.cache:
                return None

            self.cache.move_to_end(key)
            value, expiry = self.cache[key]

            if expiry and datetime.now(timezone.utc) > expiry:
                del self.cache[key]
                return None

            return value

    async def set(self, key: str, value: str, ttl: Optional[timedelta] = None):
        async with self._lock:
            if key not in self.cache and len(self.cache) >= self.max_size:
                self.cache.popitem(last=False)

            expiry = datetime.now(timezone.utc) + ttl if ttl else None
            self.cache[key] = (value, expiry)
            self.cache.move_to_end(key)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self.cache.pop(key, None) is not None


class QueryCacheService(ExactCache):
    """
    Exact-hash cache with Redis primary and in-memory fallback.
    Keys are produced by utils.sql.query_hash; values are JSON-serialized responses.
    """

    key_prefix = "nl2sql:query:"

    def __init__(self, redis_url: Optional[str] = None, enable_fallback: Optional[bool] = None):
        self.redis_url = redis_url if redis_url is not None else settings.redis_url
        self.enable_fallback = settings.enable_cache_fallback if enable_fallback is None else enable_fallback
        self.redis_client = None
        self.fallback_cache = InMemoryCache()
        self.is_redis_available = False
        self.logger = logger.bind(service="QueryCacheService")

    async def initialize(self):
        """Initialize cache connections"""
        if not self.redis_url:
            self.logger.info("No Redis URL configured, using in-memory cache")
            return

        try:
            self.redis_client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True
            )
            await self.redis_client.ping()
            self.is_redis_available = True
            self.logger.info("Redis cache initialized successfully")

        except Exception as e:
            self.logger.warning("Redis connection failed, using in-memory cache",
                              error=str(e))
            self.is_redis_available = False

    async def get_exact_cache_result(self, key: str) -> Optional[QueryResponse]:
        raw = await self._get(self.key_prefix + key)
        if not raw:
            return None

        self.logger.debug("Cache hit", key=key)
        return QueryResponse.model_validate_json(raw)

    async def store_exact_cache_result(self, key: str, response: QueryResponse, ttl: timedelta):
        payload = response.model_dump_json()
        await self._set(self.key_prefix + key, payload, ttl)
        self.logger.debug("Cache set", key=key, ttl_seconds=int(ttl.total_seconds()))

    async def invalidate(self, key: str) -> bool:
        full_key = self.key_prefix + key
        try:
            if self.is_redis_available and self.redis_client:
                return await self.redis_client.delete(full_key) > 0
        except Exception as e:
            self.logger.warning("Redis delete failed", key=key, error=str(e))
            if not self.enable_fallback:
                return False

        return await self.fallback_cache.delete(full_key)

    async def _get(self, key: str) -> Optional[str]:
        try:
            if self.is_redis_available and self.redis_client:
                return await self.redis_client.get(key)
        except Exception as e:
            self.logger.warning("Redis get failed", key=key, error=str(e))
            if not self.enable_fallback:
                return None

        return await self.fallback_cache.get(key)

    async def _set(self, key: str, value: str, ttl: timedelta):
        try:
            if self.is_redis_available and self.redis_client:
                await self.redis_client.set(key, value, ex=int(ttl.total_seconds()))
                return
        except Exception as e:
            self.logger.warning("Redis set failed", key=key, error=str(e))
            if not self.enable_fallback:
                raise CacheFailure(f"Redis set failed: {e}") from e

        await self.fallback_cache.set(key, value, ttl)

    async def close(self):
        """Close cache connections"""
        if self.redis_client:
            await self.redis_client.close()
