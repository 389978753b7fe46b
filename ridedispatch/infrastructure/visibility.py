"""
Driver-facing Redis views: assignment records and the pending ride board.

Both are hints.  The ledger decides; these only answer "what should this
driver see right now" and are safe to rewrite or clear any number of times.

Keys
----
* ``assignment:{driverId}`` -- JSON ``AssignmentSnapshot``; optional TTL.
* ``rides:pending``         -- sorted set of ride ids scored by the epoch
  second at which the listing expires.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Optional

import redis.asyncio as aioredis

from .redis_client import redis_errors
from ridedispatch.domain.entities import AssignmentSnapshot

logger = logging.getLogger(__name__)

ASSIGNMENT_KEY = "assignment:{driver_id}"
PENDING_KEY = "rides:pending"

# Delete only if the stored snapshot still refers to the given ride.  Records
# are written with ``rideId`` as the first key, so a prefix match suffices.
_CLEAR_IF_RIDE = """
local raw = redis.call("get", KEYS[1])
if raw and string.sub(raw, 1, string.len(ARGV[1])) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


def _record_prefix(ride_id: int) -> str:
    return json.dumps({"rideId": ride_id})[:-1] + ","


class AssignmentVisibilityCache:
    def __init__(self, client: aioredis.Redis, ttl_seconds: Optional[int] = None):
        self.redis = client
        self.ttl = ttl_seconds

    @staticmethod
    def key(driver_id: str) -> str:
        return ASSIGNMENT_KEY.format(driver_id=driver_id)

    async def put(self, snapshot: AssignmentSnapshot) -> None:
        with redis_errors("assignment write"):
            await self.redis.set(
                self.key(snapshot.driver_id),
                json.dumps(snapshot.to_json_dict()),
                ex=self.ttl,
            )

    async def get(self, driver_id: str) -> Optional[AssignmentSnapshot]:
        with redis_errors("assignment read"):
            raw = await self.redis.get(self.key(driver_id))
        if not raw:
            return None
        try:
            return AssignmentSnapshot.from_json_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding unreadable assignment for driver %s", driver_id)
            return None

    async def clear(self, driver_id: str, ride_id: Optional[int] = None) -> bool:
        """Drop the driver's record; with *ride_id*, only if it refers to that ride.

        Returns whether a record was removed.  Absent records are not an error.
        """
        with redis_errors("assignment clear"):
            if ride_id is None:
                removed = await self.redis.delete(self.key(driver_id))
            else:
                removed = await self.redis.eval(
                    _CLEAR_IF_RIDE, 1, self.key(driver_id), _record_prefix(ride_id)
                )
        return bool(removed)


class PendingRideBoard:
    """Time-bounded listing of rides open to every present driver."""

    def __init__(self, client: aioredis.Redis, ttl_seconds: int = 120):
        self.redis = client
        self.ttl = ttl_seconds

    async def post(self, ride_id: int) -> None:
        with redis_errors("pending board post"):
            await self.redis.zadd(PENDING_KEY, {str(ride_id): time.time() + self.ttl})

    async def remove(self, ride_id: int) -> None:
        with redis_errors("pending board remove"):
            await self.redis.zrem(PENDING_KEY, str(ride_id))

    async def open_ride_ids(self, limit: int = 50) -> list[int]:
        """Unexpired listings, oldest first; expired ones are pruned."""
        now = time.time()
        with redis_errors("pending board read"):
            await self.redis.zremrangebyscore(PENDING_KEY, "-inf", now)
            members = await self.redis.zrangebyscore(
                PENDING_KEY, now, "+inf", start=0, num=limit
            )
        return [int(m) for m in members]
