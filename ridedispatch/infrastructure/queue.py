"""
Dispatch queue on Redis Streams.

One stream per topic (``dispatch:ride-requested`` ...) and one consumer group
per consuming component.  Delivery is at-least-once:

* a message is acknowledged (``XACK``) only after its handler returns;
* a handler failing with a retryable error leaves the message pending; any
  consumer of the group reclaims it (``XAUTOCLAIM``) once it has been idle for
  ``claim_idle_ms``;
* a message delivered more than ``max_deliveries`` times, or failing with a
  terminal error (malformed payload, validation, not found, invalid
  transition), is copied to ``{stream}:dead`` and acknowledged.

The queue is an explicit object with scoped acquisition::

    async with RedisStreamQueue.from_settings() as queue:
        await queue.publish(RideRequested(...))
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as aioredis
from redis.exceptions import ResponseError

from .redis_client import create_redis, redis_errors
from ridedispatch.config import Settings, settings
from ridedispatch.domain.enums import Topic
from ridedispatch.domain.errors import DispatchError
from ridedispatch.domain.messages import QueueMessage

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], Awaitable[Any]]


class DispatchQueue(ABC):
    """Publish/consume contract shared by every queue backend."""

    async def open(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, *args):
        await self.close()

    @abstractmethod
    async def publish(self, message: QueueMessage) -> str:
        """Durably enqueue *message* on its topic; return the message id."""

    @abstractmethod
    async def poll(
        self,
        topic: Topic,
        group: str,
        handler: Handler,
        *,
        block_ms: Optional[int] = None,
    ) -> int:
        """Deliver one batch of messages to *handler*; return how many were seen."""

    async def consume(
        self,
        topic: Topic,
        group: str,
        handler: Handler,
        stop_event: asyncio.Event,
        block_ms: Optional[int] = None,
    ) -> None:
        """Poll until *stop_event* is set.  One message at a time."""
        while not stop_event.is_set():
            await self.poll(topic, group, handler, block_ms=block_ms)

    async def stats(self) -> dict[str, dict[str, int]]:
        """Per-topic depth; backends without streams report nothing."""
        return {}


class RedisStreamQueue(DispatchQueue):
    def __init__(
        self,
        client: Optional[aioredis.Redis] = None,
        *,
        url: str = settings.redis_url,
        prefix: str = "dispatch:",
        consumer_name: str = "consumer",
        max_deliveries: int = 5,
        claim_idle_ms: int = 30_000,
        batch_size: int = 10,
    ):
        self.redis = client
        self.url = url
        self.prefix = prefix
        self.consumer_name = consumer_name
        self.max_deliveries = max_deliveries
        self.claim_idle_ms = claim_idle_ms
        self.batch_size = batch_size
        self._owns_client = client is None
        self._groups: set[tuple[str, str]] = set()

    @classmethod
    def from_settings(
        cls, cfg: Settings = settings, client: Optional[aioredis.Redis] = None
    ) -> "RedisStreamQueue":
        return cls(
            client,
            url=cfg.redis_url,
            prefix=cfg.queue_stream_prefix,
            consumer_name=cfg.consumer_name,
            max_deliveries=cfg.queue_max_deliveries,
            claim_idle_ms=cfg.queue_claim_idle_ms,
            batch_size=cfg.queue_batch_size,
        )

    # ── Lifecycle ────────────────────────────────────────────────────

    async def open(self) -> None:
        if self.redis is None:
            self.redis = create_redis(self.url)
            self._owns_client = True
        logger.info("Dispatch queue ready (consumer=%s)", self.consumer_name)

    async def close(self) -> None:
        if self._owns_client and self.redis is not None:
            await self.redis.aclose()
            self.redis = None
        self._groups.clear()

    @property
    def client(self) -> aioredis.Redis:
        if self.redis is None:
            raise RuntimeError("Dispatch queue is not open")
        return self.redis

    # ── Naming ───────────────────────────────────────────────────────

    def stream(self, topic: Topic) -> str:
        return f"{self.prefix}{Topic(topic).value}"

    def dead_letter_stream(self, topic: Topic) -> str:
        return f"{self.stream(topic)}:dead"

    # ── Publish ──────────────────────────────────────────────────────

    async def publish(self, message: QueueMessage) -> str:
        payload = message.to_payload()
        with redis_errors(f"publish {message.topic.value}"):
            message_id = await self.client.xadd(
                self.stream(message.topic), {"payload": json.dumps(payload)}
            )
        logger.info("Published %s %s: %s", message.topic.value, message_id, payload)
        return message_id

    # ── Consume ──────────────────────────────────────────────────────

    async def ensure_group(self, topic: Topic, group: str) -> None:
        if (topic, group) in self._groups:
            return
        with redis_errors("create consumer group"):
            try:
                await self.client.xgroup_create(
                    self.stream(topic), group, id="0", mkstream=True
                )
            except ResponseError as exc:
                if "BUSYGROUP" not in str(exc):
                    raise
        self._groups.add((topic, group))

    async def poll(
        self,
        topic: Topic,
        group: str,
        handler: Handler,
        *,
        block_ms: Optional[int] = None,
    ) -> int:
        await self.ensure_group(topic, group)
        stream = self.stream(topic)
        seen = 0

        # 1. Reclaim messages another consumer (or we) left pending
        with redis_errors("stream claim"):
            claimed = await self.client.xautoclaim(
                stream,
                group,
                self.consumer_name,
                min_idle_time=self.claim_idle_ms,
                start_id="0-0",
                count=self.batch_size,
            )
        for message_id, fields in claimed[1]:
            await self._process(topic, group, message_id, fields, handler)
            seen += 1

        # 2. Fresh messages; don't block if reclaimed work was just done
        with redis_errors("stream read"):
            response = await self.client.xreadgroup(
                group,
                self.consumer_name,
                {stream: ">"},
                count=self.batch_size,
                block=None if seen else block_ms,
            )
        for _stream, entries in response or []:
            for message_id, fields in entries:
                await self._process(topic, group, message_id, fields, handler)
                seen += 1
        return seen

    async def _process(
        self,
        topic: Topic,
        group: str,
        message_id: str,
        fields: Optional[dict[str, str]],
        handler: Handler,
    ) -> None:
        stream = self.stream(topic)
        if not fields:
            # Entry trimmed or deleted while pending
            await self._ack(stream, group, message_id)
            return

        deliveries = await self._delivery_count(stream, group, message_id)
        if deliveries > self.max_deliveries:
            await self._dead_letter(
                topic, group, message_id, fields,
                reason=f"exceeded {self.max_deliveries} deliveries",
            )
            return

        try:
            payload = json.loads(fields["payload"])
        except (KeyError, TypeError, ValueError) as exc:
            await self._dead_letter(
                topic, group, message_id, fields, reason=f"unreadable payload: {exc}"
            )
            return

        try:
            await handler(payload)
        except DispatchError as exc:
            if exc.retryable:
                logger.warning(
                    "%s %s failed (delivery %d/%d), leaving for redelivery: %s",
                    topic.value, message_id, deliveries, self.max_deliveries, exc,
                )
                return
            await self._dead_letter(topic, group, message_id, fields, reason=exc.code)
            return
        except Exception:
            logger.exception(
                "%s %s handler crashed (delivery %d/%d)",
                topic.value, message_id, deliveries, self.max_deliveries,
            )
            return

        await self._ack(stream, group, message_id)

    async def _delivery_count(self, stream: str, group: str, message_id: str) -> int:
        with redis_errors("stream pending"):
            entries = await self.client.xpending_range(
                stream, group, min=message_id, max=message_id, count=1
            )
        if not entries:
            return 1
        return int(entries[0]["times_delivered"])

    async def _ack(self, stream: str, group: str, message_id: str) -> None:
        with redis_errors("stream ack"):
            await self.client.xack(stream, group, message_id)

    async def _dead_letter(
        self,
        topic: Topic,
        group: str,
        message_id: str,
        fields: dict[str, str],
        *,
        reason: str,
    ) -> None:
        with redis_errors("dead-letter"):
            await self.client.xadd(
                self.dead_letter_stream(topic),
                {
                    "payload": fields.get("payload", ""),
                    "source_id": message_id,
                    "group": group,
                    "reason": reason,
                },
            )
        await self._ack(self.stream(topic), group, message_id)
        logger.warning("Dead-lettered %s %s: %s", topic.value, message_id, reason)

    # ── Observability ────────────────────────────────────────────────

    async def stats(self) -> dict[str, dict[str, int]]:
        result: dict[str, dict[str, int]] = {}
        with redis_errors("stream stats"):
            for topic in Topic:
                result[topic.value] = {
                    "length": await self.client.xlen(self.stream(topic)),
                    "deadLetters": await self.client.xlen(self.dead_letter_stream(topic)),
                }
        return result
