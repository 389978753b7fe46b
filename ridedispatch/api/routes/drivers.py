"""
Driver endpoints
================

POST /api/v1/driver/online | offline       -- presence
GET  /api/v1/driver/assigned/{driver_id}   -- ride currently shown to the driver
GET  /api/v1/driver/pending?driverId=...   -- open rides a present driver may claim
POST /api/v1/driver/accept | start | complete | decline | cancel
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from ridedispatch.api.dependencies import get_services
from ridedispatch.api.middleware import limiter
from ridedispatch.api.schemas import (
    AssignedRideResponse,
    AssignmentView,
    DriverActionBody,
    DriverBody,
    MessageResponse,
    RideActionResponse,
    RideResponse,
)
from ridedispatch.config import settings
from ridedispatch.services.container import DispatchServices

router = APIRouter(prefix="/driver", tags=["drivers"])


@router.post("/online", response_model=MessageResponse)
@limiter.limit(settings.rate_limit)
async def driver_online(
    request: Request,
    body: DriverBody,
    services: DispatchServices = Depends(get_services),
):
    await services.presence.mark_online(body.driver_id)
    return MessageResponse(message="Driver marked online")


@router.post("/offline", response_model=MessageResponse)
@limiter.limit(settings.rate_limit)
async def driver_offline(
    request: Request,
    body: DriverBody,
    services: DispatchServices = Depends(get_services),
):
    await services.presence.mark_offline(body.driver_id)
    return MessageResponse(message="Driver marked offline")


@router.get("/assigned/{driver_id}", response_model=AssignedRideResponse)
@limiter.limit(settings.rate_limit)
async def assigned_ride(
    request: Request,
    driver_id: str,
    services: DispatchServices = Depends(get_services),
):
    snapshot = await services.dashboard.assigned(driver_id)
    if snapshot is None:
        return AssignedRideResponse(ride=None)
    return AssignedRideResponse(ride=AssignmentView.model_validate(snapshot))


@router.get("/pending", response_model=list[RideResponse])
@limiter.limit(settings.rate_limit)
async def pending_rides(
    request: Request,
    driver_id: str = Query(..., alias="driverId", min_length=1),
    limit: int = Query(50, ge=1, le=200),
    services: DispatchServices = Depends(get_services),
):
    rides = await services.dashboard.pending(driver_id, limit=limit)
    return [RideResponse.model_validate(r) for r in rides]


# ── Actions ───────────────────────────────────────────────────────────


@router.post("/accept", response_model=RideActionResponse)
@limiter.limit(settings.rate_limit)
async def accept(
    request: Request,
    body: DriverActionBody,
    services: DispatchServices = Depends(get_services),
):
    ride = await services.gateway.accept(body.driver_id, body.ride_id)
    return RideActionResponse(message="Ride accepted", ride=RideResponse.model_validate(ride))


@router.post("/start", response_model=RideActionResponse)
@limiter.limit(settings.rate_limit)
async def start(
    request: Request,
    body: DriverActionBody,
    services: DispatchServices = Depends(get_services),
):
    ride = await services.gateway.start(body.driver_id, body.ride_id)
    return RideActionResponse(message="Ride started", ride=RideResponse.model_validate(ride))


@router.post("/complete", response_model=RideActionResponse)
@limiter.limit(settings.rate_limit)
async def complete(
    request: Request,
    body: DriverActionBody,
    services: DispatchServices = Depends(get_services),
):
    ride = await services.gateway.complete(body.driver_id, body.ride_id)
    return RideActionResponse(message="Ride completed", ride=RideResponse.model_validate(ride))


@router.post("/decline", response_model=RideActionResponse)
@limiter.limit(settings.rate_limit)
async def decline(
    request: Request,
    body: DriverActionBody,
    services: DispatchServices = Depends(get_services),
):
    ride = await services.gateway.decline(body.driver_id, body.ride_id)
    return RideActionResponse(message="Declined", ride=RideResponse.model_validate(ride))


@router.post("/cancel", response_model=RideActionResponse)
@limiter.limit(settings.rate_limit)
async def cancel(
    request: Request,
    body: DriverActionBody,
    services: DispatchServices = Depends(get_services),
):
    ride = await services.gateway.cancel(body.driver_id, body.ride_id)
    return RideActionResponse(message="Ride cancelled", ride=RideResponse.model_validate(ride))
