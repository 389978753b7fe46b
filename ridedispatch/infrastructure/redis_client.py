"""Redis async client factory and error translation."""

from contextlib import contextmanager

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ridedispatch.config import settings
from ridedispatch.domain.errors import DependencyUnavailable


def create_redis(url: str = settings.redis_url) -> aioredis.Redis:
    """Return a Redis client backed by its own connection pool."""
    return aioredis.Redis(
        connection_pool=aioredis.ConnectionPool.from_url(url, decode_responses=True)
    )


@contextmanager
def redis_errors(operation: str):
    """Re-raise Redis failures as ``DependencyUnavailable``."""
    try:
        yield
    except RedisError as exc:
        raise DependencyUnavailable(f"Redis {operation} failed: {exc}") from exc
