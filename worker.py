"""
Ride Dispatch Worker
====================
Runs queue consumers as their own process, e.g. one coordinator replica:

    python worker.py coordinator
    python worker.py projector cancellation

With no arguments the consumers listed in ``CONSUMERS`` are started.
"""

import asyncio
import logging
import signal
import sys

from ridedispatch.config import settings
from ridedispatch.infrastructure.database import build_engine, build_session_factory
from ridedispatch.infrastructure.queue import RedisStreamQueue
from ridedispatch.infrastructure.redis_client import create_redis
from ridedispatch.services.container import build_services
from ridedispatch.workers.consumers import ConsumerSupervisor, subscriptions_for

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger("worker")


async def run(names: list[str]) -> None:
    engine = build_engine(settings.database_url)
    redis = create_redis(settings.redis_url)
    try:
        async with RedisStreamQueue.from_settings(settings, client=redis) as queue:
            services = build_services(
                session_factory=build_session_factory(engine), redis=redis, queue=queue
            )
            supervisor = ConsumerSupervisor(
                queue,
                subscriptions_for(services, names),
                block_ms=settings.queue_block_ms,
            )

            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, supervisor.request_stop)

            await supervisor.start()
            logger.info("Worker running: %s", ", ".join(names))
            await supervisor.wait()
            await supervisor.stop()
    finally:
        await redis.aclose()
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(run(sys.argv[1:] or list(settings.consumers)))
