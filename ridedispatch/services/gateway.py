"""
Driver Action Gateway
=====================

accept / start / complete / decline / cancel, each taking
``(driver_id, ride_id)``.

Every status change is committed through ``RideLedger.apply`` (atomic
compare-and-set) and then reconciles the acting driver's assignment record.
Calling any action twice with the same arguments is safe: the second call
finds nothing to change and only re-runs the idempotent cache step.

Outcomes a driver client can tell apart:

* ``RideNotFound`` / ``RideNoLongerAvailable`` -- the ride is gone;
* ``NotRideDriver`` -- the ride belongs to someone else;
* ``RideAlreadyTaken`` -- another driver won the race, try a different ride.
"""

from __future__ import annotations

import logging

from ridedispatch.domain.entities import Ride
from ridedispatch.domain.enums import RideStatus
from ridedispatch.domain.messages import RideCancelled
from ridedispatch.infrastructure.queue import DispatchQueue
from ridedispatch.infrastructure.visibility import (
    AssignmentVisibilityCache,
    PendingRideBoard,
)
from .ledger import RideLedger
from .retry import RetryPolicy
from .visibility import AssignmentProjector

logger = logging.getLogger(__name__)


class DriverActionGateway:
    def __init__(
        self,
        *,
        ledger: RideLedger,
        cache: AssignmentVisibilityCache,
        board: PendingRideBoard,
        projector: AssignmentProjector,
        queue: DispatchQueue,
        retry: RetryPolicy,
    ):
        self.ledger = ledger
        self.cache = cache
        self.board = board
        self.projector = projector
        self.queue = queue
        self.retry = retry

    async def accept(self, driver_id: str, ride_id: int) -> Ride:
        update = await self.ledger.apply(ride_id, lambda ride: ride.accept(driver_id))
        if update.before.status == RideStatus.REQUESTED:
            await self.retry.run(
                lambda: self.board.remove(ride_id),
                f"remove ride {ride_id} from pending board",
            )
        await self._show(driver_id, ride_id)
        if update.changed:
            logger.info("Driver %s accepted ride %s", driver_id, ride_id)
        return update.ride

    async def start(self, driver_id: str, ride_id: int) -> Ride:
        update = await self.ledger.apply(ride_id, lambda ride: ride.start(driver_id))
        await self._show(driver_id, ride_id)
        if update.changed:
            logger.info("Driver %s started ride %s", driver_id, ride_id)
        return update.ride

    async def complete(self, driver_id: str, ride_id: int) -> Ride:
        update = await self.ledger.apply(
            ride_id, lambda ride: ride.complete(driver_id)
        )
        await self.retry.run(
            lambda: self.cache.clear(driver_id),
            f"clear assignment for driver {driver_id}",
        )
        if update.changed:
            logger.info("Driver %s completed ride %s", driver_id, ride_id)
        return update.ride

    async def decline(self, driver_id: str, ride_id: int) -> Ride:
        """Hide the offer from this driver; the ledger is left as it is."""
        ride = await self.ledger.get(ride_id)
        await self.retry.run(
            lambda: self.cache.clear(driver_id, ride_id=ride_id),
            f"clear assignment for driver {driver_id}",
        )
        logger.info("Driver %s declined ride %s", driver_id, ride_id)
        return ride

    async def cancel(self, driver_id: str, ride_id: int) -> Ride:
        update = await self.ledger.apply(
            ride_id, lambda ride: ride.cancel_by_driver(driver_id)
        )
        await self.retry.run(
            lambda: self.cache.clear(driver_id, ride_id=ride_id),
            f"clear assignment for driver {driver_id}",
        )
        if update.changed:
            message = RideCancelled(
                ride_id=ride_id, driver_id=driver_id, rider_id=update.ride.rider_id
            )
            await self.retry.run(
                lambda: self.queue.publish(message),
                f"publish ride-cancelled for ride {ride_id}",
            )
            logger.info("Driver %s cancelled ride %s", driver_id, ride_id)
        return update.ride

    async def _show(self, driver_id: str, ride_id: int) -> None:
        await self.retry.run(
            lambda: self.projector.project(ride_id, driver_id),
            f"show ride {ride_id} to driver {driver_id}",
        )
