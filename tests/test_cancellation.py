"""
Cancellation tests.

Demonstrates:
1. A rider cancel unwinds the driver-facing assignment through the queue.
2. Propagation is a no-op when there is nothing to clear.
3. Out-of-order delivery: a driver-assigned message handled after the
   cancellation never resurrects the offer.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from ridedispatch.domain.entities import AssignmentSnapshot
from ridedispatch.domain.enums import RideStatus, Topic
from ridedispatch.domain.errors import DependencyUnavailable, InvalidTransition
from tests.conftest import request_ride

PROPAGATOR_GROUP = "cancellation-propagator"
PROJECTOR_GROUP = "assignment-projector"


class TestRiderCancel:
    @pytest.mark.asyncio
    async def test_cancel_assigned_ride_clears_driver(self, services, queue):
        await services.presence.mark_online("D1")
        ride_id = (await request_ride(services)).ride_id
        assert await services.dashboard.assigned("D1") is not None

        ride = await services.rides.cancel_ride(ride_id)
        assert ride.status == RideStatus.RIDER_CANCELLED
        assert ride.driver_id is None

        [message] = queue.of_topic(Topic.RIDE_CANCELLED)
        assert message.driver_id == "D1"

        handled = await queue.poll(
            Topic.RIDE_CANCELLED, PROPAGATOR_GROUP, services.propagator.handle_ride_cancelled
        )
        assert handled == 1
        assert await services.dashboard.assigned("D1") is None

    @pytest.mark.asyncio
    async def test_cancel_open_ride_leaves_board(self, services, queue):
        ride_id = (await request_ride(services)).ride_id
        assert await services.board.open_ride_ids() == [ride_id]

        await services.rides.cancel_ride(ride_id)

        assert await services.board.open_ride_ids() == []
        [message] = queue.of_topic(Topic.RIDE_CANCELLED)
        assert message.driver_id is None

    @pytest.mark.asyncio
    async def test_cancel_twice_is_a_noop(self, services, queue):
        ride_id = (await request_ride(services)).ride_id
        first = await services.rides.cancel_ride(ride_id)

        again = await services.rides.cancel_ride(ride_id)

        assert again.status == RideStatus.RIDER_CANCELLED
        assert again.cancelled_at == first.cancelled_at
        assert len(queue.of_topic(Topic.RIDE_CANCELLED)) == 2

    @pytest.mark.asyncio
    async def test_retry_after_failed_publish_finishes_cleanup(
        self, services, queue, monkeypatch
    ):
        await services.presence.mark_online("D1")
        ride_id = (await request_ride(services)).ride_id
        monkeypatch.setattr(
            queue,
            "publish",
            AsyncMock(side_effect=DependencyUnavailable("queue down")),
        )

        with pytest.raises(DependencyUnavailable):
            await services.rides.cancel_ride(ride_id)

        # The driver stops seeing the ride even though nothing was published
        assert await services.dashboard.assigned("D1") is None

        monkeypatch.undo()
        ride = await services.rides.cancel_ride(ride_id)

        assert ride.status == RideStatus.RIDER_CANCELLED
        [message] = queue.of_topic(Topic.RIDE_CANCELLED)
        assert message.ride_id == ride_id
        assert await services.dashboard.assigned("D1") is None

    @pytest.mark.asyncio
    async def test_cannot_cancel_accepted_ride(self, services):
        await services.presence.mark_online("D1")
        ride_id = (await request_ride(services)).ride_id
        await services.gateway.accept("D1", ride_id)

        with pytest.raises(InvalidTransition):
            await services.rides.cancel_ride(ride_id)
        assert (await services.ledger.get(ride_id)).status == RideStatus.ACCEPTED


class TestPropagator:
    @pytest.mark.asyncio
    async def test_nothing_to_clear(self, services):
        cleared = await services.propagator.handle_ride_cancelled(
            {"rideId": 5, "driverId": "D9", "riderId": "R1"}
        )
        assert cleared is False

    @pytest.mark.asyncio
    async def test_without_driver(self, services):
        cleared = await services.propagator.handle_ride_cancelled(
            {"rideId": 5, "riderId": "R1"}
        )
        assert cleared is False

    @pytest.mark.asyncio
    async def test_keeps_record_of_a_newer_ride(self, services):
        await services.visibility.put(
            AssignmentSnapshot(
                ride_id=12,
                rider_id="R2",
                driver_id="D1",
                pickup="Elm St",
                dropoff="Airport",
                status=RideStatus.ASSIGNED,
            )
        )

        cleared = await services.propagator.handle_ride_cancelled(
            {"rideId": 1, "driverId": "D1", "riderId": "R1"}
        )

        assert cleared is False
        assert (await services.dashboard.assigned("D1")).ride_id == 12


class TestOutOfOrder:
    @pytest.mark.asyncio
    async def test_late_assignment_is_not_shown(self, services, queue):
        await services.presence.mark_online("D1")
        ride_id = (await request_ride(services)).ride_id

        # Cancellation is propagated before the driver-assigned message is
        # consumed by the projector
        await services.rides.cancel_ride(ride_id)
        await queue.poll(
            Topic.RIDE_CANCELLED, PROPAGATOR_GROUP, services.propagator.handle_ride_cancelled
        )
        await queue.poll(
            Topic.DRIVER_ASSIGNED, PROJECTOR_GROUP, services.projector.handle_driver_assigned
        )

        assert await services.dashboard.assigned("D1") is None

    @pytest.mark.asyncio
    async def test_stale_record_is_removed_by_projection(self, services):
        await services.presence.mark_online("D1")
        ride_id = (await request_ride(services)).ride_id
        snapshot = await services.dashboard.assigned("D1")
        await services.rides.cancel_ride(ride_id)

        # A slow writer puts the old offer back after the cancel
        await services.visibility.put(snapshot)
        shown = await services.projector.project(ride_id, "D1")

        assert shown is False
        assert await services.dashboard.assigned("D1") is None
