"""Read-through cache backed by Redis.

The cache is advisory: any Redis failure falls back to the loader and is
logged, never raised.

Usage:
    cache = ReadCache()

    page = await cache.read_through(
        f"orders:user:{user_id}:1:20",
        lambda: load_page(db, user_id),
        OrderPage,
    )

    # after a successful write
    await cache.invalidate(f"orders:user:{user_id}:*", "orders:admin:*")
"""
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import TypeAdapter

from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.common.redis import get_redis

logger = get_logger(__name__)

T = TypeVar("T")


class ReadCache:
    """Explicit cache-read → fallback → cache-write wrapper."""

    def __init__(
        self,
        client: Any = None,
        *,
        enabled: Optional[bool] = None,
        default_ttl: Optional[int] = None,
    ):
        settings = get_settings()
        self._client = client
        self.enabled = settings.CACHE_ENABLED if enabled is None else enabled
        self.default_ttl = (
            settings.CACHE_TTL_SECONDS if default_ttl is None else default_ttl
        )

    async def _redis(self):
        if self._client is None:
            self._client = await get_redis()
        return self._client

    async def read_through(
        self,
        key: str,
        loader: Callable[[], Awaitable[T]],
        schema: Any,
        ttl: Optional[int] = None,
    ) -> T:
        """Return the cached value for ``key`` or load, cache and return it.

        ``schema`` is any type pydantic can validate (a model, ``list[Model]``...).
        """
        if not self.enabled:
            return await loader()

        adapter = TypeAdapter(schema)

        try:
            redis = await self._redis()
            raw = await redis.get(key)
            if raw is not None:
                return adapter.validate_json(raw)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}: {e}")

        value = await loader()

        try:
            redis = await self._redis()
            await redis.set(key, adapter.dump_json(value), ex=ttl or self.default_ttl)
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")

        return value

    async def invalidate(self, *patterns: str) -> int:
        """Delete every key matching the given glob patterns.

        Returns the number of keys removed (0 when Redis is unavailable).
        """
        if not self.enabled or not patterns:
            return 0

        removed = 0
        try:
            redis = await self._redis()
            for pattern in patterns:
                if "*" not in pattern:
                    removed += await redis.delete(pattern)
                    continue
                keys = [key async for key in redis.scan_iter(match=pattern)]
                if keys:
                    removed += await redis.delete(*keys)
        except Exception as e:
            logger.warning(f"Cache invalidation failed for {patterns}: {e}")
        return removed
