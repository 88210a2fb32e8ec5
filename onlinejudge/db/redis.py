"""Redis connection helpers."""

import redis.asyncio as redis


def create_redis(redis_url: str) -> redis.Redis:
    """Create a Redis client backed by its own connection pool."""
    pool = redis.ConnectionPool.from_url(
        redis_url,
        decode_responses=True,
    )
    return redis.Redis(connection_pool=pool)


async def close_redis(client: redis.Redis) -> None:
    """Close a Redis client and disconnect its pool."""
    await client.aclose()
    await client.connection_pool.disconnect()
