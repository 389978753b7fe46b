"""Consumer supervisor and side-effect retry tests."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from ridedispatch.domain.enums import RideStatus, Topic
from ridedispatch.domain.errors import DependencyUnavailable, ValidationError
from ridedispatch.domain.messages import RideCancelled
from ridedispatch.services.retry import RetryPolicy
from ridedispatch.workers.consumers import (
    ConsumerSupervisor,
    Subscription,
    subscriptions_for,
)


async def _wait_for(condition, timeout=5.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not condition():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class TestRetryPolicy:
    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        operation = AsyncMock(side_effect=[DependencyUnavailable("down"), "ok"])

        result = await RetryPolicy(attempts=3, base_delay=0).run(operation, "test op")

        assert result == "ok"
        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up(self):
        operation = AsyncMock(side_effect=DependencyUnavailable("down"))

        with pytest.raises(DependencyUnavailable):
            await RetryPolicy(attempts=3, base_delay=0).run(operation, "test op")
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        operation = AsyncMock(side_effect=ValidationError("bad"))

        with pytest.raises(ValidationError):
            await RetryPolicy(attempts=3, base_delay=0).run(operation, "test op")
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_side_effect_retried_after_commit(self, services, monkeypatch):
        await services.presence.mark_online("D1")
        publish = AsyncMock(side_effect=[DependencyUnavailable("queue down"), "1-0"])
        monkeypatch.setattr(services.coordinator.queue, "publish", publish)

        result = await services.coordinator.handle_ride_requested(
            {"riderId": "R1", "pickup": "Main St", "dropoff": "5th Ave"}
        )

        assert result.driver_id == "D1"
        assert publish.await_count == 2
        assert (await services.ledger.get(result.ride_id)).status == RideStatus.ASSIGNED


class TestSubscriptions:
    def test_known_consumers(self, services):
        subs = subscriptions_for(services, ["coordinator", "projector", "cancellation"])
        assert [(s.topic, s.group) for s in subs] == [
            (Topic.RIDE_REQUESTED, "dispatch-coordinator"),
            (Topic.DRIVER_ASSIGNED, "assignment-projector"),
            (Topic.RIDE_CANCELLED, "cancellation-propagator"),
        ]

    def test_unknown_consumer(self, services):
        with pytest.raises(ValueError, match="Unknown consumer"):
            subscriptions_for(services, ["matcher"])


class TestSupervisor:
    @pytest.mark.asyncio
    async def test_request_flows_to_assignment(self, services, queue):
        await services.presence.mark_online("D1")
        request_id = await services.rides.request_ride("R1", "Main St", "5th Ave")

        supervisor = ConsumerSupervisor(
            queue, subscriptions_for(services, ["coordinator"]), block_ms=None
        )
        await supervisor.start()
        try:
            await _wait_for(lambda: queue.of_topic(Topic.DRIVER_ASSIGNED))
        finally:
            await supervisor.stop()

        ride = await services.ledger.get_by_request(request_id)

        assert ride.rider_id == "R1"
        assert ride.driver_id == "D1"
        assert (await services.dashboard.assigned("D1")).ride_id == ride.id

    @pytest.mark.asyncio
    async def test_consumer_survives_handler_crash(self, queue):
        calls = []

        async def flaky(payload):
            calls.append(payload)
            if len(calls) == 1:
                raise RuntimeError("boom")

        await queue.publish(RideCancelled(ride_id=1, rider_id="R1"))
        supervisor = ConsumerSupervisor(
            queue,
            [Subscription("test", Topic.RIDE_CANCELLED, "test-group", flaky)],
            block_ms=None,
            error_backoff_seconds=0.01,
        )
        await supervisor.start()
        try:
            for _ in range(500):
                if len(calls) >= 2:
                    break
                await asyncio.sleep(0.01)
        finally:
            await supervisor.stop()

        assert len(calls) == 2
        assert calls[0] == calls[1]
