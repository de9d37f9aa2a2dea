"""
Redis client initialization and connection management.

Redis backs the per-obligation locks that serialize ledger mutations
across API workers.
"""

import redis.asyncio as redis
from fee_ledger.app.core.config import settings


# Create async Redis client
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """
    Get Redis client instance.

    Looked up at call time so tests can swap the module-level client.
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
    except redis.RedisError:
        return False
