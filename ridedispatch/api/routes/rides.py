"""
Ride endpoints
==============

POST /api/v1/ride/request                   -- enqueue a ride request (202)
GET  /api/v1/ride/{ride_id}                 -- current ride state
GET  /api/v1/ride/by-request/{request_id}   -- ride created for a request
POST /api/v1/ride/{ride_id}/status          -- generic status transition
POST /api/v1/ride/cancel                    -- rider cancellation
POST /api/v1/ride/accept                    -- driver accept (same as /driver/accept)
GET  /api/v1/ride/history/rider/{rider_id}  -- rider history, newest first
GET  /api/v1/ride/history/driver/{driver_id}
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ridedispatch.api.dependencies import get_services
from ridedispatch.api.middleware import limiter
from ridedispatch.api.schemas import (
    DriverActionBody,
    RideActionResponse,
    RideCancelBody,
    RideRequestAccepted,
    RideRequestBody,
    RideResponse,
    RideStatusBody,
)
from ridedispatch.config import settings
from ridedispatch.services.container import DispatchServices

router = APIRouter(prefix="/ride", tags=["rides"])


@router.post(
    "/request",
    status_code=202,
    response_model=RideRequestAccepted,
    summary="Request a ride",
    responses={202: {"description": "Request queued; the ride is created by dispatch."}},
)
@limiter.limit(settings.rate_limit)
async def request_ride(
    request: Request,
    body: RideRequestBody,
    services: DispatchServices = Depends(get_services),
):
    request_id = await services.rides.request_ride(
        body.rider_id, body.pickup, body.dropoff, idempotency_key=body.idempotency_key
    )
    return RideRequestAccepted(request_id=request_id)


@router.post("/cancel", response_model=RideActionResponse, summary="Cancel a ride")
@limiter.limit(settings.rate_limit)
async def cancel_ride(
    request: Request,
    body: RideCancelBody,
    services: DispatchServices = Depends(get_services),
):
    ride = await services.rides.cancel_ride(body.ride_id)
    return RideActionResponse(
        message="Ride cancelled", ride=RideResponse.model_validate(ride)
    )


@router.post("/accept", response_model=RideActionResponse, summary="Driver accepts a ride")
@limiter.limit(settings.rate_limit)
async def accept_ride(
    request: Request,
    body: DriverActionBody,
    services: DispatchServices = Depends(get_services),
):
    ride = await services.gateway.accept(body.driver_id, body.ride_id)
    return RideActionResponse(
        message="Ride accepted", ride=RideResponse.model_validate(ride)
    )


@router.post(
    "/{ride_id}/status",
    response_model=RideActionResponse,
    summary="Move a ride to a new status",
)
@limiter.limit(settings.rate_limit)
async def update_status(
    request: Request,
    ride_id: int,
    body: RideStatusBody,
    services: DispatchServices = Depends(get_services),
):
    ride = await services.rides.update_status(ride_id, body.status)
    return RideActionResponse(
        message="Ride status updated", ride=RideResponse.model_validate(ride)
    )


@router.get("/by-request/{request_id}", response_model=RideResponse)
@limiter.limit(settings.rate_limit)
async def get_ride_by_request(
    request: Request,
    request_id: str,
    services: DispatchServices = Depends(get_services),
):
    ride = await services.ledger.get_by_request(request_id)
    return RideResponse.model_validate(ride)


@router.get("/history/rider/{rider_id}", response_model=list[RideResponse])
@limiter.limit(settings.rate_limit)
async def rider_history(
    request: Request,
    rider_id: str,
    services: DispatchServices = Depends(get_services),
):
    rides = await services.ledger.history_for_rider(rider_id)
    return [RideResponse.model_validate(r) for r in rides]


@router.get("/history/driver/{driver_id}", response_model=list[RideResponse])
@limiter.limit(settings.rate_limit)
async def driver_history(
    request: Request,
    driver_id: str,
    services: DispatchServices = Depends(get_services),
):
    rides = await services.ledger.history_for_driver(driver_id)
    return [RideResponse.model_validate(r) for r in rides]


@router.get("/{ride_id}", response_model=RideResponse, summary="Get ride status")
@limiter.limit(settings.rate_limit)
async def get_ride(
    request: Request,
    ride_id: int,
    services: DispatchServices = Depends(get_services),
):
    ride = await services.ledger.get(ride_id)
    return RideResponse.model_validate(ride)
