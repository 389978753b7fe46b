"""Pydantic request / response schemas for the REST API.

JSON travels in camelCase; field names stay snake_case in Python.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ridedispatch.domain.enums import RideStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


# ── Requests ──────────────────────────────────────────────────────────


class RideRequestBody(CamelModel):
    rider_id: str = Field(..., min_length=1, max_length=64)
    pickup: str = Field(..., min_length=1, max_length=255)
    dropoff: str = Field(..., min_length=1, max_length=255)
    idempotency_key: Optional[str] = Field(
        None,
        max_length=64,
        description="Client-generated key; retries with the same key map to one ride.",
    )


class RideCancelBody(CamelModel):
    ride_id: int


class RideStatusBody(CamelModel):
    status: RideStatus


class DriverBody(CamelModel):
    driver_id: str = Field(..., min_length=1, max_length=64)


class DriverActionBody(CamelModel):
    ride_id: int
    driver_id: str = Field(..., min_length=1, max_length=64)


# ── Responses ─────────────────────────────────────────────────────────


class RideResponse(CamelModel):
    id: int
    request_id: Optional[str] = None
    rider_id: str
    driver_id: Optional[str] = None
    pickup: str
    dropoff: str
    status: RideStatus
    requested_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class RideRequestAccepted(CamelModel):
    message: str = "Ride request sent"
    request_id: str


class RideActionResponse(CamelModel):
    message: str
    ride: RideResponse


class AssignmentView(CamelModel):
    ride_id: int
    rider_id: str
    driver_id: str
    pickup: str
    dropoff: str
    status: RideStatus
    requested_at: Optional[str] = None


class AssignedRideResponse(CamelModel):
    ride: Optional[AssignmentView] = None


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str = "ok"


class QueueStatsResponse(BaseModel):
    topics: dict[str, dict[str, int]]


class ErrorResponse(BaseModel):
    detail: str
    code: str
