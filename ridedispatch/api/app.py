"""
FastAPI application factory.

* Registers routes for rides, drivers and admin.
* Opens the ledger engine, Redis and the dispatch queue on startup and
  releases them on shutdown; optionally hosts the queue consumers.
* Maps ``DispatchError`` to ``{"detail", "code"}`` JSON responses.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from ridedispatch.api.middleware import limiter
from ridedispatch.api.routes import admin, drivers, rides
from ridedispatch.config import settings
from ridedispatch.domain.errors import DispatchError
from ridedispatch.infrastructure.database import build_engine, build_session_factory
from ridedispatch.infrastructure.queue import RedisStreamQueue
from ridedispatch.infrastructure.redis_client import create_redis
from ridedispatch.services.container import build_services
from ridedispatch.workers import consumers as _consumers

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Acquire backends on startup, start consumers; release on shutdown."""
    engine = build_engine(settings.database_url)
    redis = create_redis(settings.redis_url)
    try:
        async with RedisStreamQueue.from_settings(settings, client=redis) as queue:
            services = build_services(
                session_factory=build_session_factory(engine), redis=redis, queue=queue
            )
            app.state.services = services

            supervisor = None
            if settings.run_consumers:
                supervisor = _consumers.ConsumerSupervisor(
                    queue,
                    _consumers.subscriptions_for(services, settings.consumers),
                    block_ms=settings.queue_block_ms,
                )
                await supervisor.start()
            logger.info("Dispatch API ready (policy=%s)", settings.selection_policy)

            try:
                yield
            finally:
                if supervisor is not None:
                    await supervisor.stop()
    finally:
        await redis.aclose()
        await engine.dispose()


async def _dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s -> %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Ride Dispatch API",
        description=(
            "Matches ride requests to available drivers, shows assignments to "
            "polling driver clients, resolves concurrent accepts and unwinds "
            "cancellations across queue-connected services."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_exception_handler(DispatchError, _dispatch_error_handler)

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(drivers.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
