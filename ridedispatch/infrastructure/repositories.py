"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  ``compare_and_set`` is the single write path
for contended ride updates: the UPDATE is conditioned on the status and
driver the caller observed, so a second writer can never overwrite a change
it did not see.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import RideModel
from ridedispatch.domain.enums import RideStatus


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_ride(
        self,
        *,
        rider_id: str,
        pickup: str,
        dropoff: str,
        requested_at: datetime,
        request_id: str | None = None,
    ) -> RideModel:
        ride = RideModel(
            rider_id=rider_id,
            pickup=pickup,
            dropoff=dropoff,
            request_id=request_id,
            status=RideStatus.REQUESTED,
            requested_at=requested_at,
        )
        self.session.add(ride)
        await self.session.flush()
        return ride

    async def get_by_id(self, ride_id: int) -> Optional[RideModel]:
        return await self.session.get(RideModel, ride_id, populate_existing=True)

    async def get_by_request_id(self, request_id: str) -> Optional[RideModel]:
        result = await self.session.execute(
            select(RideModel).where(RideModel.request_id == request_id)
        )
        return result.scalar_one_or_none()

    async def get_many(self, ride_ids: list[int]) -> list[RideModel]:
        if not ride_ids:
            return []
        result = await self.session.execute(
            select(RideModel).where(RideModel.id.in_(ride_ids)).order_by(RideModel.id)
        )
        return list(result.scalars().all())

    async def history_for_rider(self, rider_id: str) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.rider_id == rider_id)
            .order_by(RideModel.requested_at.desc(), RideModel.id.desc())
        )
        return list(result.scalars().all())

    async def history_for_driver(self, driver_id: str) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.driver_id == driver_id)
            .order_by(RideModel.requested_at.desc(), RideModel.id.desc())
        )
        return list(result.scalars().all())

    async def compare_and_set(
        self,
        ride_id: int,
        *,
        expected_status: RideStatus,
        expected_driver_id: Optional[str],
        values: dict[str, Any],
    ) -> bool:
        """UPDATE the ride only if it still has the observed status/driver."""
        driver_clause = (
            RideModel.driver_id.is_(None)
            if expected_driver_id is None
            else RideModel.driver_id == expected_driver_id
        )
        result = await self.session.execute(
            update(RideModel)
            .where(
                RideModel.id == ride_id,
                RideModel.status == expected_status,
                driver_clause,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
