"""
Redis connection for stream tracking.

The client is created once at startup and passed to the tracker; there is
no module-level connection.
"""
import logging

from redis import asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


def create_cache_client(url: str) -> aioredis.Redis:
    """Build the async Redis client. Connections are opened lazily."""
    return aioredis.from_url(url, decode_responses=True)


async def check_cache(client: aioredis.Redis) -> tuple[bool, str]:
    """
    Ping Redis.

    Returns:
        (is_available, message)
    """
    try:
        await client.ping()
        return True, "Redis available"
    except (RedisError, OSError) as e:
        return False, f"Redis unavailable: {e}"


async def close_cache_client(client: aioredis.Redis) -> None:
    try:
        await client.aclose()
    except (RedisError, OSError) as e:
        logger.warning("Failed to close Redis client: %s", e)
