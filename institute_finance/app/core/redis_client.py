"""
Redis client initialization and connection management.

This module provides the Redis client used to fan out finance events.
"""

import logging
import redis.asyncio as redis
from redis.exceptions import RedisError
from institute_finance.app.core.config import settings

logger = logging.getLogger("institute_finance.redis")


# Create async Redis client
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def ping_redis() -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return bool(await redis_client.ping())
    except (RedisError, OSError) as exc:
        logger.warning("Redis ping failed: %s", exc)
        return False
