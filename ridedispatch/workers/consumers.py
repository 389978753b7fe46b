"""
Queue Consumer Workers
======================

One asyncio task per subscription; each task handles one message at a time.
Which consumers a process hosts is configuration (``CONSUMERS``), so the
coordinator, projector and propagator can be scaled as separate processes
(``worker.py``) or run inside the API process (``RUN_CONSUMERS``).

| name           | topic           | group                    |
|----------------|-----------------|--------------------------|
| coordinator    | ride-requested  | dispatch-coordinator     |
| projector      | driver-assigned | assignment-projector     |
| cancellation   | ride-cancelled  | cancellation-propagator  |
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from ridedispatch.domain.enums import Topic
from ridedispatch.infrastructure.queue import DispatchQueue, Handler
from ridedispatch.services.container import DispatchServices

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Subscription:
    name: str
    topic: Topic
    group: str
    handler: Handler


def subscriptions_for(
    services: DispatchServices, names: Iterable[str]
) -> list[Subscription]:
    available = {
        "coordinator": Subscription(
            "coordinator",
            Topic.RIDE_REQUESTED,
            "dispatch-coordinator",
            services.coordinator.handle_ride_requested,
        ),
        "projector": Subscription(
            "projector",
            Topic.DRIVER_ASSIGNED,
            "assignment-projector",
            services.projector.handle_driver_assigned,
        ),
        "cancellation": Subscription(
            "cancellation",
            Topic.RIDE_CANCELLED,
            "cancellation-propagator",
            services.propagator.handle_ride_cancelled,
        ),
    }
    selected = []
    for name in names:
        if name not in available:
            raise ValueError(f"Unknown consumer {name!r}; expected one of {sorted(available)}")
        selected.append(available[name])
    return selected


class ConsumerSupervisor:
    def __init__(
        self,
        queue: DispatchQueue,
        subscriptions: list[Subscription],
        *,
        block_ms: Optional[int] = 5_000,
        error_backoff_seconds: float = 1.0,
    ):
        self.queue = queue
        self.subscriptions = subscriptions
        self.block_ms = block_ms
        self.error_backoff_seconds = error_backoff_seconds
        self._stop_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    # ── Public API ───────────────────────────────────────────────────

    async def start(self) -> None:
        self._stop_event.clear()
        for sub in self.subscriptions:
            self._tasks.append(asyncio.create_task(self._loop(sub), name=sub.name))
            logger.info("Consumer %s started (%s / %s)", sub.name, sub.topic.value, sub.group)

    async def stop(self) -> None:
        self._stop_event.set()
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()
        logger.info("Consumers stopped")

    async def wait(self) -> None:
        await self._stop_event.wait()

    def request_stop(self) -> None:
        self._stop_event.set()

    # ── Internals ────────────────────────────────────────────────────

    async def _loop(self, sub: Subscription) -> None:
        """Consume until stopped; back off and resume after any failure."""
        while not self._stop_event.is_set():
            try:
                await self.queue.consume(
                    sub.topic, sub.group, sub.handler, self._stop_event, block_ms=self.block_ms
                )
            except Exception:
                logger.exception("Consumer %s failed; restarting", sub.name)
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(), timeout=self.error_backoff_seconds
                    )
                except asyncio.TimeoutError:
                    pass  # retry
