"""Rider-facing operations: intake, cancellation, generic status updates."""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from ridedispatch.domain.entities import Ride
from ridedispatch.domain.enums import RideStatus
from ridedispatch.domain.errors import InvalidTransition
from ridedispatch.domain.messages import RideCancelled, RideRequested
from ridedispatch.infrastructure.queue import DispatchQueue
from ridedispatch.infrastructure.visibility import (
    AssignmentVisibilityCache,
    PendingRideBoard,
)
from .gateway import DriverActionGateway
from .ledger import RideLedger
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


class RideService:
    def __init__(
        self,
        *,
        ledger: RideLedger,
        cache: AssignmentVisibilityCache,
        board: PendingRideBoard,
        queue: DispatchQueue,
        gateway: DriverActionGateway,
        retry: RetryPolicy,
    ):
        self.ledger = ledger
        self.cache = cache
        self.board = board
        self.queue = queue
        self.gateway = gateway
        self.retry = retry

    async def request_ride(
        self,
        rider_id: str,
        pickup: str,
        dropoff: str,
        idempotency_key: Optional[str] = None,
    ) -> str:
        """Enqueue a ride request; the coordinator creates the ride.

        Returns the request id the ride will carry.
        """
        message = RideRequested.parse(
            {
                "request_id": idempotency_key or uuid.uuid4().hex,
                "rider_id": rider_id,
                "pickup": pickup,
                "dropoff": dropoff,
            }
        )
        await self.queue.publish(message)
        return message.request_id

    async def cancel_ride(self, ride_id: int) -> Ride:
        """Rider cancellation: ``requested|assigned -> rider_cancelled``.

        Repeating the call on a cancelled ride commits nothing and re-runs
        the side effects, so a caller that saw a failure can simply retry.
        The previous driver's record is cleared directly, since the committed
        ride no longer names the driver.
        """
        update = await self.ledger.apply(ride_id, lambda ride: ride.cancel_by_rider())
        driver_id = update.before.driver_id
        if driver_id is not None:
            await self.retry.run(
                lambda: self.cache.clear(driver_id, ride_id=ride_id),
                f"clear assignment for driver {driver_id}",
            )
        await self.retry.run(
            lambda: self.board.remove(ride_id),
            f"remove ride {ride_id} from pending board",
        )
        message = RideCancelled(
            ride_id=ride_id,
            driver_id=driver_id,
            rider_id=update.ride.rider_id,
        )
        await self.retry.run(
            lambda: self.queue.publish(message),
            f"publish ride-cancelled for ride {ride_id}",
        )
        if update.changed:
            logger.info("Rider cancelled ride %s", ride_id)
        return update.ride

    async def update_status(self, ride_id: int, status: RideStatus) -> Ride:
        """Generic transition for the entry layer.

        Driver-side targets act on behalf of the ride's current driver and go
        through the gateway so the assignment cache is reconciled.
        """
        if status == RideStatus.RIDER_CANCELLED:
            return await self.cancel_ride(ride_id)

        actions = {
            RideStatus.ACCEPTED: self.gateway.accept,
            RideStatus.ONGOING: self.gateway.start,
            RideStatus.COMPLETED: self.gateway.complete,
            RideStatus.DRIVER_CANCELLED: self.gateway.cancel,
        }
        action = actions.get(status)
        if action is None:
            raise InvalidTransition(
                f"Status {status.value} is set by dispatch, not by request"
            )

        ride = await self.ledger.get(ride_id)
        if ride.driver_id is None:
            raise InvalidTransition(
                f"Ride {ride_id} is {ride.status.value} with no driver; "
                f"cannot move to {status.value}"
            )
        return await action(ride.driver_id, ride_id)
