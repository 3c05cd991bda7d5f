"""
Redis client initialization and connection management.

Redis holds the Match Ranker's cached rankings. It never holds spot
availability.
"""

import redis.asyncio as redis
from redis.exceptions import RedisError
from campus_parking.app.core.config import settings


# Create async Redis client
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """
    Get Redis client instance.

    Looked up through the module so tests can swap the client.
    """
    return redis_client


async def ping_redis() -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return await redis_client.ping()
    except (RedisError, OSError):
        return False
