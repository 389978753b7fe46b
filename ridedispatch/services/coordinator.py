"""
Dispatch Coordinator
====================

Consumes ``ride-requested`` messages.

Per message
-----------
1. Create the ride in ``requested`` (the only place ride ids are minted).
   A redelivered message with a known ``requestId`` resumes from the
   existing ride.
2. Ask the configured selection policy for an outcome.
3. *assign*: ledger ``requested -> assigned``, then show the ride to the
   driver and publish ``driver-assigned``.
   *broadcast* / *unmatched*: post the ride to the pending board; the ledger
   is untouched.

Side effects after a ledger commit are retried on their own and never undo
the commit.  If they still fail the error propagates, the message stays
unacknowledged and the redelivery resumes at step 3.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ridedispatch.domain.entities import Ride
from ridedispatch.domain.enums import RideStatus
from ridedispatch.domain.errors import InvalidTransition
from ridedispatch.domain.messages import DriverAssigned, RideRequested
from ridedispatch.domain.selection import (
    SelectionKind,
    SelectionOutcome,
    SelectionPolicy,
)
from ridedispatch.infrastructure.presence import DriverPresenceRegistry
from ridedispatch.infrastructure.queue import DispatchQueue
from ridedispatch.infrastructure.visibility import PendingRideBoard
from .ledger import RideLedger
from .retry import RetryPolicy
from .visibility import AssignmentProjector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchResult:
    ride_id: int
    kind: Optional[SelectionKind]
    driver_id: Optional[str] = None
    created: bool = True


class DispatchCoordinator:
    def __init__(
        self,
        *,
        ledger: RideLedger,
        presence: DriverPresenceRegistry,
        board: PendingRideBoard,
        projector: AssignmentProjector,
        queue: DispatchQueue,
        policy: SelectionPolicy,
        retry: RetryPolicy,
    ):
        self.ledger = ledger
        self.presence = presence
        self.board = board
        self.projector = projector
        self.queue = queue
        self.policy = policy
        self.retry = retry

    async def handle_ride_requested(self, payload: dict) -> DispatchResult:
        request = RideRequested.parse(payload)
        ride, created = await self.ledger.create(
            rider_id=request.rider_id,
            pickup=request.pickup,
            dropoff=request.dropoff,
            request_id=request.request_id,
        )
        if not created:
            logger.info(
                "Request %s already has ride %s (%s); resuming",
                request.request_id, ride.id, ride.status.value,
            )

        if ride.status == RideStatus.REQUESTED:
            outcome = await self.policy.select_and_assign(ride, self.presence)
            if outcome.posts_to_board:
                await self.retry.run(
                    lambda: self.board.post(ride.id),
                    f"post ride {ride.id} to pending board",
                )
                logger.info(
                    "Ride %s open to all drivers (%s, policy=%s)",
                    ride.id, outcome.kind.value, self.policy.name.value,
                )
                return DispatchResult(ride.id, outcome.kind, created=created)

            assigned = await self._assign(ride, outcome)
            if assigned is None:
                return DispatchResult(ride.id, None, created=created)
            ride = assigned

        if ride.status == RideStatus.ASSIGNED:
            await self._announce(ride)
            return DispatchResult(
                ride.id, SelectionKind.ASSIGN, ride.driver_id, created=created
            )

        # Already accepted / underway / cancelled: nothing left to dispatch
        return DispatchResult(ride.id, None, ride.driver_id, created=created)

    async def _assign(self, ride: Ride, outcome: SelectionOutcome) -> Optional[Ride]:
        driver_id = outcome.driver_id
        try:
            update = await self.ledger.apply(
                ride.id, lambda current: current.assign(driver_id)
            )
        except InvalidTransition as exc:
            # Cancelled or claimed between creation and selection
            logger.info("Ride %s not assigned to %s: %s", ride.id, driver_id, exc)
            return None
        logger.info("Ride %s assigned to driver %s", ride.id, driver_id)
        return update.ride

    async def _announce(self, ride: Ride) -> None:
        await self.retry.run(
            lambda: self.projector.project(ride.id, ride.driver_id),
            f"show ride {ride.id} to driver {ride.driver_id}",
        )
        message = DriverAssigned(
            ride_id=ride.id,
            rider_id=ride.rider_id,
            driver_id=ride.driver_id,
            pickup=ride.pickup,
            dropoff=ride.dropoff,
        )
        await self.retry.run(
            lambda: self.queue.publish(message),
            f"publish driver-assigned for ride {ride.id}",
        )
