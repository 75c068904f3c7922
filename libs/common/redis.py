"""Shared async Redis client."""
from typing import Optional

import redis.asyncio as aioredis

from libs.common.config import get_settings

_client: Optional[aioredis.Redis] = None


async def get_redis() -> aioredis.Redis:
    """Return the process-wide Redis client, creating it lazily."""
    global _client
    if _client is None:
        settings = get_settings()
        _client = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client
