"""
Redis Client

Lazily created async client, used by the Redis session store and the
readiness probe.
"""
import asyncio
from urllib.parse import urlparse

import redis.asyncio as aioredis

from splitbill.core.config import settings
from splitbill.core.logging import get_logger

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None
_init_lock = asyncio.Lock()


def mask_redis_url(url: str) -> str:
    """Hide the password in REDIS_URL for logs (redis://:****@host:6379)"""
    parsed = urlparse(url)
    if parsed.password:
        return url.replace(f":{parsed.password}@", ":****@")
    return url


async def get_redis() -> aioredis.Redis:
    """Return the shared client, connecting on first use"""
    global _redis_client
    if _redis_client is not None:
        return _redis_client

    async with _init_lock:
        if _redis_client is not None:
            return _redis_client

        client = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
        await client.ping()
        _redis_client = client
        logger.info(
            "Redis client initialized",
            extra_data={"url": mask_redis_url(settings.REDIS_URL)}
        )
    return _redis_client


async def close_redis() -> None:
    """Close the shared client; called on app shutdown"""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")
