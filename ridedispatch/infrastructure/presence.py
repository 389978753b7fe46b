"""Driver presence registry backed by the Redis set ``presence:online``.

Existence is the whole signal.  There is no heartbeat: a driver that drops
off without calling offline stays present until it does.
"""

from __future__ import annotations

import logging
from typing import Optional

import redis.asyncio as aioredis

from .redis_client import redis_errors
from .visibility import AssignmentVisibilityCache

logger = logging.getLogger(__name__)

PRESENCE_KEY = "presence:online"


class DriverPresenceRegistry:
    def __init__(
        self, client: aioredis.Redis, visibility: AssignmentVisibilityCache
    ):
        self.redis = client
        self.visibility = visibility

    async def mark_online(self, driver_id: str) -> None:
        with redis_errors("presence add"):
            await self.redis.sadd(PRESENCE_KEY, driver_id)
        logger.info("Driver %s online", driver_id)

    async def mark_offline(self, driver_id: str) -> None:
        """Leave the pool and drop any live offer shown to the driver."""
        with redis_errors("presence remove"):
            await self.redis.srem(PRESENCE_KEY, driver_id)
        await self.visibility.clear(driver_id)
        logger.info("Driver %s offline", driver_id)

    async def is_online(self, driver_id: str) -> bool:
        with redis_errors("presence read"):
            return bool(await self.redis.sismember(PRESENCE_KEY, driver_id))

    async def snapshot(self) -> set[str]:
        with redis_errors("presence read"):
            return set(await self.redis.smembers(PRESENCE_KEY))

    async def random_driver(self) -> Optional[str]:
        """Uniform random pick from the current snapshot, ``None`` if empty."""
        with redis_errors("presence pick"):
            return await self.redis.srandmember(PRESENCE_KEY)
