"""
Shared test fixtures.

Uses a throwaway SQLite database (via aiosqlite) and an in-process fake Redis
(fakeredis) so tests run without Docker / PostgreSQL / Redis.  The dispatch
queue is replaced by ``RecordingQueue``, which keeps published messages in
memory and hands them to consumers on ``poll``.
"""

from __future__ import annotations

import asyncio
import itertools
from collections import defaultdict
from typing import AsyncGenerator, Optional

import fakeredis
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ridedispatch.config import Settings
from ridedispatch.domain.enums import Topic
from ridedispatch.domain.messages import QueueMessage
from ridedispatch.infrastructure import models  # noqa: F401  (registers tables)
from ridedispatch.infrastructure.database import (
    Base,
    build_engine,
    build_session_factory,
)
from ridedispatch.infrastructure.queue import DispatchQueue, Handler
from ridedispatch.services.container import DispatchServices, build_services


class RecordingQueue(DispatchQueue):
    """In-memory queue: every group sees every message of its topic once."""

    def __init__(self):
        self.published: list[QueueMessage] = []
        self._ids = itertools.count(1)
        self._offsets: dict[tuple[Topic, str], int] = defaultdict(int)

    async def publish(self, message: QueueMessage) -> str:
        self.published.append(message)
        return f"{next(self._ids)}-0"

    def of_topic(self, topic: Topic) -> list[QueueMessage]:
        return [m for m in self.published if m.topic == topic]

    async def poll(
        self,
        topic: Topic,
        group: str,
        handler: Handler,
        *,
        block_ms: Optional[int] = None,
    ) -> int:
        messages = self.of_topic(topic)
        start = self._offsets[(topic, group)]
        if start == len(messages):
            await asyncio.sleep(0.01)
            return 0
        for message in messages[start:]:
            await handler(message.to_payload())
            self._offsets[(topic, group)] += 1
        return len(messages) - start


def make_settings(tmp_path, **overrides) -> Settings:
    values = {
        "database_url": f"sqlite+aiosqlite:///{tmp_path / 'rides.db'}",
        "redis_url": "redis://localhost:6379/15",
        "selection_policy": "direct_pick",
        "side_effect_retry_attempts": 2,
        "side_effect_retry_base_delay": 0,
        "run_consumers": False,
    }
    values.update(overrides)
    return Settings(**values)


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest_asyncio.fixture
async def engine(test_settings) -> AsyncGenerator[AsyncEngine, None]:
    """Create tables in a fresh database file, then drop everything."""
    engine = build_engine(test_settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def redis():
    client = fakeredis.FakeAsyncRedis(
        server=fakeredis.FakeServer(), decode_responses=True
    )
    yield client
    await client.aclose()


@pytest.fixture
def queue() -> RecordingQueue:
    return RecordingQueue()


@pytest.fixture
def make_services(session_factory, redis, queue, tmp_path):
    """Build the service graph with settings overrides, e.g. a policy."""

    def _make(**overrides) -> DispatchServices:
        return build_services(
            session_factory=session_factory,
            redis=redis,
            queue=queue,
            cfg=make_settings(tmp_path, **overrides),
        )

    return _make


@pytest.fixture
def services(make_services) -> DispatchServices:
    return make_services()


@pytest.fixture
def broadcast_services(make_services) -> DispatchServices:
    return make_services(selection_policy="broadcast")


async def request_ride(
    services: DispatchServices,
    *,
    rider_id: str = "R1",
    pickup: str = "Main St",
    dropoff: str = "5th Ave",
    request_id: Optional[str] = None,
):
    """Run one ride-requested message through the coordinator."""
    payload = {"riderId": rider_id, "pickup": pickup, "dropoff": dropoff}
    if request_id:
        payload["requestId"] = request_id
    return await services.coordinator.handle_ride_requested(payload)
