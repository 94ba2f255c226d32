# Two-tier result cache orchestration
# services/cache_coordinator.py
"""
Consults the semantic cache, then the exact-hash cache, before generation,
and writes successful responses back to every enabled cache.
Cache errors never fail a query: lookups degrade to a miss, writes are skipped.
"""

from datetime import timedelta
from typing import Optional
import structlog
from models.requests import QueryRequest
from models.responses import QueryResponse
from services.interfaces import ExactCache, SemanticCache, SettingsProvider
from utils.config import settings
from utils.metrics import CACHE_OPERATIONS
from utils.sql import query_hash


logger = structlog.get_logger()

QUERY_CACHING_FLAG = "EnableQueryCaching"
SEMANTIC_CACHE_FLAG = "EnableEnhancedSemanticCache"


class CacheCoordinator:

    def __init__(
        self,
        settings_provider: SettingsProvider,
        semantic_cache: Optional[SemanticCache] = None,
        exact_cache: Optional[ExactCache] = None,
        ttl: Optional[timedelta] = None,
        similarity_threshold: Optional[float] = None,
        max_results: Optional[int] = None
    ):
        self.settings_provider = settings_provider
        self.semantic_cache = semantic_cache
        self.exact_cache = exact_cache
        self.ttl = ttl or timedelta(seconds=settings.cache_ttl_seconds)
        self.similarity_threshold = (
            similarity_threshold if similarity_threshold is not None
            else settings.semantic_similarity_threshold
        )
        self.max_results = max_results or settings.semantic_max_results
        self.logger = logger.bind(component="CacheCoordinator")

    async def is_caching_enabled(self, request: QueryRequest) -> bool:
        """Admin switch AND the per-request option"""
        if not request.options.enable_cache:
            return False
        return await self._flag(QUERY_CACHING_FLAG)

    async def lookup(self, request: QueryRequest) -> Optional[QueryResponse]:
        if not await self.is_caching_enabled(request):
            return None

        if self.semantic_cache is not None and await self._flag(SEMANTIC_CACHE_FLAG):
            try:
                hit = await self.semantic_cache.get_semantic_cache_result(
                    request.question, self.similarity_threshold, self.max_results
                )
            except Exception as e:
                CACHE_OPERATIONS.labels(cache="semantic", operation="get", status="error").inc()
                self.logger.warning("Semantic cache lookup failed", error=str(e))
                hit = None

            if hit is not None:
                CACHE_OPERATIONS.labels(cache="semantic", operation="get", status="hit").inc()
                return hit
            CACHE_OPERATIONS.labels(cache="semantic", operation="get", status="miss").inc()

        if self.exact_cache is not None:
            try:
                hit = await self.exact_cache.get_exact_cache_result(query_hash(request.question))
            except Exception as e:
                CACHE_OPERATIONS.labels(cache="exact", operation="get", status="error").inc()
                self.logger.warning("Exact cache lookup failed", error=str(e))
                hit = None

            if hit is not None:
                CACHE_OPERATIONS.labels(cache="exact", operation="get", status="hit").inc()
                return hit
            CACHE_OPERATIONS.labels(cache="exact", operation="get", status="miss").inc()

        return None

    async def store(self, request: QueryRequest, response: QueryResponse) -> int:
        """Returns the number of caches written"""
        if not response.success or not await self.is_caching_enabled(request):
            return 0

        written = 0

        if self.semantic_cache is not None and await self._flag(SEMANTIC_CACHE_FLAG):
            try:
                await self.semantic_cache.store_semantic_cache_result(
                    request.question, response.sql, response, self.ttl
                )
                CACHE_OPERATIONS.labels(cache="semantic", operation="set", status="ok").inc()
                written += 1
            except Exception as e:
                CACHE_OPERATIONS.labels(cache="semantic", operation="set", status="error").inc()
                self.logger.warning("Semantic cache write failed", error=str(e))

        if self.exact_cache is not None:
            try:
                await self.exact_cache.store_exact_cache_result(
                    query_hash(request.question), response, self.ttl
                )
                CACHE_OPERATIONS.labels(cache="exact", operation="set", status="ok").inc()
                written += 1
            except Exception as e:
                CACHE_OPERATIONS.labels(cache="exact", operation="set", status="error").inc()
                self.logger.warning("Exact cache write failed", error=str(e))

        return written

    async def _flag(self, name: str) -> bool:
        try:
            return bool(await self.settings_provider.get_boolean_setting(name))
        except Exception as e:
            self.logger.warning("Setting lookup failed, treating as disabled", setting=name, error=str(e))
            return False
