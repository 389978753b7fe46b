"""Builds the object graph every entry point (API, worker, tests) shares."""

from __future__ import annotations

from dataclasses import dataclass

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ridedispatch.config import Settings, settings
from ridedispatch.domain.selection import SelectionPolicy, build_policy
from ridedispatch.infrastructure.presence import DriverPresenceRegistry
from ridedispatch.infrastructure.queue import DispatchQueue
from ridedispatch.infrastructure.visibility import (
    AssignmentVisibilityCache,
    PendingRideBoard,
)
from .cancellation import CancellationPropagator
from .coordinator import DispatchCoordinator
from .gateway import DriverActionGateway
from .ledger import RideLedger
from .retry import RetryPolicy
from .rides import RideService
from .visibility import AssignmentProjector, DriverDashboard


@dataclass
class DispatchServices:
    ledger: RideLedger
    presence: DriverPresenceRegistry
    visibility: AssignmentVisibilityCache
    board: PendingRideBoard
    queue: DispatchQueue
    policy: SelectionPolicy
    projector: AssignmentProjector
    coordinator: DispatchCoordinator
    gateway: DriverActionGateway
    propagator: CancellationPropagator
    rides: RideService
    dashboard: DriverDashboard


def build_services(
    *,
    session_factory: async_sessionmaker[AsyncSession],
    redis: aioredis.Redis,
    queue: DispatchQueue,
    cfg: Settings = settings,
) -> DispatchServices:
    retry = RetryPolicy.from_settings(cfg)
    ledger = RideLedger(session_factory)
    visibility = AssignmentVisibilityCache(redis, ttl_seconds=cfg.assignment_ttl_seconds)
    board = PendingRideBoard(redis, ttl_seconds=cfg.pending_offer_ttl_seconds)
    presence = DriverPresenceRegistry(redis, visibility)
    policy = build_policy(cfg.selection_policy)
    projector = AssignmentProjector(ledger, visibility)

    gateway = DriverActionGateway(
        ledger=ledger,
        cache=visibility,
        board=board,
        projector=projector,
        queue=queue,
        retry=retry,
    )
    return DispatchServices(
        ledger=ledger,
        presence=presence,
        visibility=visibility,
        board=board,
        queue=queue,
        policy=policy,
        projector=projector,
        coordinator=DispatchCoordinator(
            ledger=ledger,
            presence=presence,
            board=board,
            projector=projector,
            queue=queue,
            policy=policy,
            retry=retry,
        ),
        gateway=gateway,
        propagator=CancellationPropagator(visibility, board),
        rides=RideService(
            ledger=ledger,
            cache=visibility,
            board=board,
            queue=queue,
            gateway=gateway,
            retry=retry,
        ),
        dashboard=DriverDashboard(ledger, presence, visibility, board),
    )
