"""Delayed delivery built from message TTL and dead-lettering.

A delayed message is published into a holding queue whose messages expire
after the delay. On expiry the broker dead-letters them to the target queue
(through the default exchange) or to a target exchange. Holding queues are
named after the target and the TTL, so every process reuses the same one.
"""

import math
import typing as t
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, Field

from ._base import InvalidConfigurationError

Delay = int | float | timedelta | datetime


class DelayPlan(BaseModel):
    """Holding queue to publish into for one (target, ttl) pair."""

    queue: str
    ttl: int = Field(gt=0, description="Message TTL in milliseconds")
    arguments: dict[str, t.Any]


class DelayStrategy:
    """Compute holding-queue names and arguments for delayed messages."""

    separator = ".delay."

    @staticmethod
    def ttl_for(delay: Delay | None, now: datetime | None = None) -> int:
        """Convert a delay into whole milliseconds; past or negative gives 0."""
        if delay is None:
            return 0
        if isinstance(delay, bool):
            raise InvalidConfigurationError(f"Invalid delay: {delay!r}")
        if isinstance(delay, datetime):
            if now is None:
                now = datetime.now(UTC) if delay.tzinfo else datetime.now()
            delay = delay - now
        if isinstance(delay, timedelta):
            delay = delay.total_seconds()
        if not isinstance(delay, int | float) or math.isnan(delay):
            raise InvalidConfigurationError(f"Invalid delay: {delay!r}")

        return max(round(delay * 1000), 0)

    def queue_name(self, target: str, ttl: int) -> str:
        return f"{target}{self.separator}{ttl}"

    def arguments(
        self, routing_key: str, ttl: int, exchange: str | None = None
    ) -> dict[str, t.Any]:
        """Arguments for a holding queue that dead-letters to ``routing_key``.

        Without an exchange the default exchange is used, which routes
        straight to the queue named ``routing_key``.
        """
        return {
            "x-message-ttl": ttl,
            "x-dead-letter-exchange": exchange or "",
            "x-dead-letter-routing-key": routing_key,
        }

    def plan(
        self,
        target: str,
        delay: Delay | None,
        exchange: str | None = None,
        routing_key: str | None = None,
    ) -> DelayPlan | None:
        """Holding queue for ``delay``, or None when it should publish immediately.

        Args:
            target: Queue name (or exchange label) the holding queue is named after
            delay: Seconds, timedelta or datetime
            exchange: Exchange to dead-letter into; default exchange when None
            routing_key: Dead-letter routing key, defaults to ``target``
        """
        ttl = self.ttl_for(delay)
        if ttl <= 0:
            return None
        return DelayPlan(
            queue=self.queue_name(target, ttl),
            ttl=ttl,
            arguments=self.arguments(
                target if routing_key is None else routing_key, ttl, exchange
            ),
        )
