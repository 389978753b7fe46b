"""Dispatch coordinator tests: ride-requested in, assignment out."""

from __future__ import annotations

import pytest

from ridedispatch.domain.enums import RideStatus, Topic
from ridedispatch.domain.errors import ValidationError
from ridedispatch.domain.selection import SelectionKind
from tests.conftest import request_ride


class TestDirectPick:
    @pytest.mark.asyncio
    async def test_request_is_assigned_and_shown(self, services, queue):
        await services.presence.mark_online("D1")

        result = await request_ride(services, rider_id="R1", pickup="Main St", dropoff="5th Ave")

        assert result.kind == SelectionKind.ASSIGN
        assert result.driver_id == "D1"

        ride = await services.ledger.get(result.ride_id)
        assert ride.status == RideStatus.ASSIGNED
        assert ride.driver_id == "D1"
        assert ride.pickup == "Main St"
        assert ride.dropoff == "5th Ave"

        shown = await services.dashboard.assigned("D1")
        assert shown.ride_id == ride.id
        assert shown.rider_id == "R1"
        assert shown.status == RideStatus.ASSIGNED

        [announced] = queue.of_topic(Topic.DRIVER_ASSIGNED)
        assert announced.ride_id == ride.id
        assert announced.driver_id == "D1"

    @pytest.mark.asyncio
    async def test_offline_driver_is_never_picked(self, services):
        await services.presence.mark_online("D1")
        await services.presence.mark_online("D2")
        await services.presence.mark_offline("D1")

        for _ in range(5):
            result = await request_ride(services)
            assert result.driver_id == "D2"

    @pytest.mark.asyncio
    async def test_nobody_online_posts_to_pending_board(self, services, queue):
        result = await request_ride(services)

        assert result.kind == SelectionKind.UNMATCHED
        assert (await services.ledger.get(result.ride_id)).status == RideStatus.REQUESTED
        assert await services.board.open_ride_ids() == [result.ride_id]
        assert queue.of_topic(Topic.DRIVER_ASSIGNED) == []

    @pytest.mark.asyncio
    async def test_malformed_request_is_rejected(self, services):
        with pytest.raises(ValidationError):
            await services.coordinator.handle_ride_requested({"riderId": "R1", "pickup": ""})


class TestRedelivery:
    @pytest.mark.asyncio
    async def test_same_request_creates_one_ride(self, services, queue):
        await services.presence.mark_online("D1")

        first = await request_ride(services, request_id="req-7")
        second = await request_ride(services, request_id="req-7")

        assert first.created and not second.created
        assert second.ride_id == first.ride_id
        assert second.driver_id == "D1"
        assert len(await services.ledger.history_for_rider("R1")) == 1
        # The assignment is re-announced, never re-decided
        assert len(queue.of_topic(Topic.DRIVER_ASSIGNED)) == 2

    @pytest.mark.asyncio
    async def test_redelivery_after_acceptance_does_nothing(self, services, queue):
        await services.presence.mark_online("D1")
        first = await request_ride(services, request_id="req-8")
        await services.gateway.accept("D1", first.ride_id)

        again = await request_ride(services, request_id="req-8")

        assert again.kind is None
        assert (await services.ledger.get(first.ride_id)).status == RideStatus.ACCEPTED
        assert len(queue.of_topic(Topic.DRIVER_ASSIGNED)) == 1

    @pytest.mark.asyncio
    async def test_redelivery_of_cancelled_ride_is_not_reassigned(self, services):
        first = await request_ride(services, request_id="req-9")
        await services.rides.cancel_ride(first.ride_id)
        await services.presence.mark_online("D1")

        again = await request_ride(services, request_id="req-9")

        assert again.kind is None
        ride = await services.ledger.get(first.ride_id)
        assert ride.status == RideStatus.RIDER_CANCELLED
        assert await services.dashboard.assigned("D1") is None


class TestBroadcast:
    @pytest.mark.asyncio
    async def test_ride_is_offered_to_everyone(self, broadcast_services, queue):
        await broadcast_services.presence.mark_online("D1")
        await broadcast_services.presence.mark_online("D2")

        result = await request_ride(broadcast_services)

        assert result.kind == SelectionKind.BROADCAST
        assert (await broadcast_services.ledger.get(result.ride_id)).driver_id is None
        for driver in ("D1", "D2"):
            pending = await broadcast_services.dashboard.pending(driver)
            assert [r.id for r in pending] == [result.ride_id]
            assert await broadcast_services.dashboard.assigned(driver) is None
        assert queue.of_topic(Topic.DRIVER_ASSIGNED) == []
