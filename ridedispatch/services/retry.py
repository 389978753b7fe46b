"""Retry with exponential backoff for side effects that follow a ledger commit.

The ledger is already correct at that point, so the side effect (cache write,
queue publish) is retried on its own instead of re-deriving anything.  Only
``DependencyUnavailable`` is retried; every other error surfaces at once.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from ridedispatch.config import Settings
from ridedispatch.domain.errors import DependencyUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 5
    base_delay: float = 0.2

    @classmethod
    def from_settings(cls, cfg: Settings) -> "RetryPolicy":
        return cls(
            attempts=cfg.side_effect_retry_attempts,
            base_delay=cfg.side_effect_retry_base_delay,
        )

    async def run(self, operation: Callable[[], Awaitable[T]], description: str) -> T:
        attempt = 1
        while True:
            try:
                return await operation()
            except DependencyUnavailable as exc:
                if attempt >= self.attempts:
                    logger.error(
                        "Giving up on %s after %d attempts: %s", description, attempt, exc
                    )
                    raise
                delay = self.base_delay * 2 ** (attempt - 1)
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                    description, attempt, self.attempts, delay, exc,
                )
                await asyncio.sleep(delay)
                attempt += 1
