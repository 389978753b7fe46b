"""Cancellation Propagator: consumer for ``ride-cancelled`` messages."""

from __future__ import annotations

import logging

from ridedispatch.domain.messages import RideCancelled
from ridedispatch.infrastructure.visibility import (
    AssignmentVisibilityCache,
    PendingRideBoard,
)

logger = logging.getLogger(__name__)


class CancellationPropagator:
    def __init__(self, cache: AssignmentVisibilityCache, board: PendingRideBoard):
        self.cache = cache
        self.board = board

    async def handle_ride_cancelled(self, payload: dict) -> bool:
        """Drop every driver-facing trace of the ride.

        Clearing is idempotent: a driver with no record (already completed,
        declined, or never shown the ride) is a no-op.  Returns whether an
        assignment record was removed.
        """
        message = RideCancelled.parse(payload)
        await self.board.remove(message.ride_id)
        if not message.driver_id:
            return False
        cleared = await self.cache.clear(message.driver_id, ride_id=message.ride_id)
        if cleared:
            logger.info(
                "Cleared assignment of ride %s for driver %s",
                message.ride_id, message.driver_id,
            )
        return cleared
