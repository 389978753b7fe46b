"""
Assignment visibility: keeping the driver-facing cache in step with the ledger.

``AssignmentProjector.project`` is the one routine that writes an assignment
record.  It reads the ledger first and again after writing, so a record that
lands after the ride was cancelled (cancellation processed before the
assignment, or racing it) is removed again.  The coordinator, the gateway and
the driver-assigned consumer all go through it.
"""

from __future__ import annotations

import logging
from typing import Optional

from ridedispatch.domain.entities import AssignmentSnapshot, Ride
from ridedispatch.domain.enums import RideStatus
from ridedispatch.domain.messages import DriverAssigned
from ridedispatch.infrastructure.presence import DriverPresenceRegistry
from ridedispatch.infrastructure.visibility import (
    AssignmentVisibilityCache,
    PendingRideBoard,
)
from .ledger import RideLedger

logger = logging.getLogger(__name__)


class AssignmentProjector:
    def __init__(self, ledger: RideLedger, cache: AssignmentVisibilityCache):
        self.ledger = ledger
        self.cache = cache

    @staticmethod
    def _visible_to(ride: Ride, driver_id: str) -> bool:
        return ride.is_live and ride.driver_id == driver_id

    async def project(self, ride_id: int, driver_id: str) -> bool:
        """Show the ride to *driver_id* if the ledger says they hold it.

        Returns whether a record is in place afterwards.
        """
        ride = await self.ledger.get(ride_id)
        if not self._visible_to(ride, driver_id):
            await self.cache.clear(driver_id, ride_id=ride_id)
            return False

        await self.cache.put(AssignmentSnapshot.of(ride))

        latest = await self.ledger.get(ride_id)
        if not self._visible_to(latest, driver_id):
            logger.info(
                "Ride %s became %s while projecting; clearing driver %s",
                ride_id, latest.status.value, driver_id,
            )
            await self.cache.clear(driver_id, ride_id=ride_id)
            return False
        if latest.status != ride.status:
            await self.cache.put(AssignmentSnapshot.of(latest))
        return True

    async def handle_driver_assigned(self, payload: dict) -> bool:
        """Consumer for ``driver-assigned`` messages."""
        message = DriverAssigned.parse(payload)
        shown = await self.project(message.ride_id, message.driver_id)
        logger.info(
            "driver-assigned ride=%s driver=%s -> %s",
            message.ride_id, message.driver_id, "shown" if shown else "skipped",
        )
        return shown


class DriverDashboard:
    """Read side for polling driver clients."""

    def __init__(
        self,
        ledger: RideLedger,
        presence: DriverPresenceRegistry,
        cache: AssignmentVisibilityCache,
        board: PendingRideBoard,
    ):
        self.ledger = ledger
        self.presence = presence
        self.cache = cache
        self.board = board

    async def assigned(self, driver_id: str) -> Optional[AssignmentSnapshot]:
        return await self.cache.get(driver_id)

    async def pending(self, driver_id: str, limit: int = 50) -> list[Ride]:
        """Open rides a present driver may claim; offline drivers see none."""
        if not await self.presence.is_online(driver_id):
            return []
        ride_ids = await self.board.open_ride_ids(limit)
        rides = await self.ledger.get_many(ride_ids)
        still_open = [r for r in rides if r.status == RideStatus.REQUESTED]
        stale = set(ride_ids) - {r.id for r in still_open}
        for ride_id in stale:
            await self.board.remove(ride_id)
        return still_open
