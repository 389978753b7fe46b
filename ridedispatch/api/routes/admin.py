"""
Admin / observability endpoints
===============================

GET /api/v1/admin/health  -- simple health check
GET /api/v1/admin/queues  -- stream and dead-letter depth per topic
"""

from fastapi import APIRouter, Depends, Request

from ridedispatch.api.dependencies import get_services
from ridedispatch.api.middleware import limiter
from ridedispatch.api.schemas import HealthResponse, QueueStatsResponse
from ridedispatch.config import settings
from ridedispatch.services.container import DispatchServices

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()


@router.get(
    "/queues",
    response_model=QueueStatsResponse,
    summary="Dispatch queue depth and dead letters per topic",
)
@limiter.limit(settings.rate_limit)
async def queue_stats(
    request: Request,
    services: DispatchServices = Depends(get_services),
):
    return QueueStatsResponse(topics=await services.queue.stats())
