"""
Ride Ledger
===========

Authoritative, durable record of every ride.  Each operation runs in its own
short transaction so that a committed transition is visible to every replica
the moment the call returns.

Writes go through ``apply``: read the ride, let a pure domain action mutate a
copy of the entity, then persist the difference with a compare-and-set on the
``(status, driver_id)`` that was read.  If another writer got there first the
UPDATE matches no row and the whole read-decide-write cycle is repeated
against the fresh state, so the domain guard (not the write) decides what
the loser sees, e.g. ``RideAlreadyTaken`` for a lost accept race.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from typing import AsyncIterator, Callable, Optional

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ridedispatch.domain.entities import Ride, utcnow
from ridedispatch.domain.errors import (
    DependencyUnavailable,
    InvalidTransition,
    RideNotFound,
)
from ridedispatch.infrastructure.repositories import RideRepository

logger = logging.getLogger(__name__)

RideAction = Callable[[Ride], None]


@dataclass(frozen=True)
class LedgerUpdate:
    before: Ride
    ride: Ride
    changed: bool


class RideLedger:
    MAX_CAS_ATTEMPTS = 3

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[RideRepository]:
        try:
            async with self._sessions() as session:
                async with session.begin():
                    yield RideRepository(session)
        except (OperationalError, InterfaceError) as exc:
            raise DependencyUnavailable(f"Ride ledger unavailable: {exc}") from exc

    # ── Creation ─────────────────────────────────────────────────────

    async def create(
        self,
        *,
        rider_id: str,
        pickup: str,
        dropoff: str,
        request_id: Optional[str] = None,
    ) -> tuple[Ride, bool]:
        """Create a ``requested`` ride.  Returns ``(ride, created)``.

        A known *request_id* returns the existing ride instead, so a
        redelivered ride-requested message never creates a duplicate.
        """
        if request_id:
            existing = await self._find_by_request(request_id)
            if existing is not None:
                return existing, False
        try:
            async with self._transaction() as repo:
                record = await repo.create_ride(
                    rider_id=rider_id,
                    pickup=pickup,
                    dropoff=dropoff,
                    request_id=request_id,
                    requested_at=utcnow(),
                )
                ride = Ride.from_record(record)
        except IntegrityError:
            # Lost a race with a concurrent delivery of the same request
            existing = await self._find_by_request(request_id) if request_id else None
            if existing is None:
                raise
            return existing, False
        logger.info("Ride %s created for rider %s", ride.id, rider_id)
        return ride, True

    # ── Reads ────────────────────────────────────────────────────────

    async def get(self, ride_id: int) -> Ride:
        async with self._transaction() as repo:
            record = await repo.get_by_id(ride_id)
            if record is None:
                raise RideNotFound(f"Ride {ride_id} not found")
            return Ride.from_record(record)

    async def get_by_request(self, request_id: str) -> Ride:
        ride = await self._find_by_request(request_id)
        if ride is None:
            raise RideNotFound(f"No ride for request {request_id}")
        return ride

    async def _find_by_request(self, request_id: str) -> Optional[Ride]:
        async with self._transaction() as repo:
            record = await repo.get_by_request_id(request_id)
            return Ride.from_record(record) if record is not None else None

    async def get_many(self, ride_ids: list[int]) -> list[Ride]:
        async with self._transaction() as repo:
            return [Ride.from_record(r) for r in await repo.get_many(ride_ids)]

    async def history_for_rider(self, rider_id: str) -> list[Ride]:
        async with self._transaction() as repo:
            return [Ride.from_record(r) for r in await repo.history_for_rider(rider_id)]

    async def history_for_driver(self, driver_id: str) -> list[Ride]:
        async with self._transaction() as repo:
            return [Ride.from_record(r) for r in await repo.history_for_driver(driver_id)]

    # ── Writes ───────────────────────────────────────────────────────

    async def apply(self, ride_id: int, action: RideAction) -> LedgerUpdate:
        """Run *action* against the current ride and commit it atomically."""
        for attempt in range(1, self.MAX_CAS_ATTEMPTS + 1):
            async with self._transaction() as repo:
                record = await repo.get_by_id(ride_id)
                if record is None:
                    raise RideNotFound(f"Ride {ride_id} not found")
                before = Ride.from_record(record)
                after = replace(before)
                action(after)

                changes = after.changes_since(before)
                if not changes:
                    return LedgerUpdate(before, after, changed=False)

                if await repo.compare_and_set(
                    ride_id,
                    expected_status=before.status,
                    expected_driver_id=before.driver_id,
                    values=changes,
                ):
                    logger.info(
                        "Ride %s: %s -> %s (driver=%s)",
                        ride_id, before.status.value, after.status.value, after.driver_id,
                    )
                    return LedgerUpdate(before, after, changed=True)

            logger.info(
                "Ride %s changed concurrently, re-reading (attempt %d/%d)",
                ride_id, attempt, self.MAX_CAS_ATTEMPTS,
            )
        raise InvalidTransition(f"Ride {ride_id} kept changing concurrently")
