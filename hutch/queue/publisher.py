"""Publish path: immediate, delayed and batched.

Every publish first makes sure its destination exists (cache gated, see
:mod:`hutch.queue.topology`), then builds a persistent message stamped with
the attempt counter, then publishes on the primary channel.
"""

import typing as t

from pydantic import BaseModel

from ._base import (
    EXCHANGE_PREFIX,
    ExchangeType,
    InvalidConfigurationError,
    JobMessage,
)
from .delay import Delay, DelayStrategy

if t.TYPE_CHECKING:
    from hutch.config import QueueSettings

    from .connection import ConnectionManager
    from .topology import Topology

PublishOptions = dict[str, t.Any]


class Destination(BaseModel):
    """Where one publish goes."""

    routing_key: str
    exchange: str = ""
    exchange_type: ExchangeType = ExchangeType.DIRECT
    queue: str | None = None
    bind: bool = False

    @property
    def label(self) -> str:
        """Name used for the holding queue of delayed messages.

        A queue bound to the configured exchange keeps its own name; only
        pure exchange publishes are labelled after exchange and routing key.
        """
        if self.queue:
            return self.queue
        if not self.exchange:
            return self.routing_key
        if self.routing_key:
            return f"{self.exchange}.{self.routing_key}"
        return self.exchange


def validate_attempts(attempts: t.Any) -> int:
    if isinstance(attempts, bool) or not isinstance(attempts, int) or attempts < 0:
        raise InvalidConfigurationError(f"Invalid attempt count: {attempts!r}")
    return attempts


class Publisher:
    """Orchestrates declare, build and publish for every enqueue operation."""

    def __init__(
        self,
        manager: "ConnectionManager",
        topology: "Topology",
        settings: "QueueSettings",
        delay_strategy: DelayStrategy | None = None,
    ) -> None:
        self.manager = manager
        self.topology = topology
        self.settings = settings
        self.delay_strategy = delay_strategy or DelayStrategy()
        self.logger = manager.logger

    def get_queue(self, queue: str | None = None) -> str:
        return queue or self.settings.queue

    # ========================================================================
    # Destinations
    # ========================================================================

    def destination(
        self, queue: str | None = None, options: PublishOptions | None = None
    ) -> Destination:
        """Resolve a queue name, ``exchange:<name>`` alias and options.

        Resolution order: the alias, then an explicit ``exchange`` option,
        then the configured default exchange, then the queue itself.
        """
        options = options or {}
        queue = self.get_queue(queue)
        exchange_type = ExchangeType.parse(
            options.get("exchange_type") or self.settings.exchange_type
        )

        if queue.startswith(EXCHANGE_PREFIX):
            return Destination(
                exchange=queue.removeprefix(EXCHANGE_PREFIX),
                routing_key=options.get("routing_key", ""),
                exchange_type=exchange_type,
            )

        if options.get("exchange"):
            return Destination(
                exchange=options["exchange"],
                routing_key=options.get("routing_key", self.settings.routing_key(queue)),
                exchange_type=exchange_type,
            )

        if self.settings.exchange:
            return Destination(
                exchange=self.settings.exchange,
                routing_key=self.settings.routing_key(queue),
                exchange_type=exchange_type,
                queue=queue,
                bind=True,
            )

        return Destination(routing_key=queue, queue=queue)

    def declare_destination(self, destination: Destination) -> None:
        """Declare the destination when necessary."""
        if destination.exchange:
            if not self.topology.exchange_exists(destination.exchange):
                self.topology.declare_exchange(
                    destination.exchange, destination.exchange_type
                )
            if not destination.bind or destination.queue is None:
                return

        queue = t.cast(str, destination.queue)
        if not self.topology.queue_exists(queue):
            self.topology.declare_queue(
                queue, durable=True, arguments=self.settings.queue_arguments()
            )

        if destination.bind:
            self.topology.bind_queue(queue, destination.exchange, destination.routing_key)

    def create_message(
        self, payload: bytes | str, options: PublishOptions | None = None
    ) -> JobMessage:
        options = options or {}
        return JobMessage.create(
            payload,
            attempts=validate_attempts(options.get("attempts", 0)),
            correlation_id=options.get("correlation_id"),
            headers=options.get("headers"),
            priority=options.get("priority"),
        )

    # ========================================================================
    # Immediate
    # ========================================================================

    def push(self, payload: bytes | str, queue: str | None = None) -> str:
        """Push a payload onto the queue; returns the correlation id."""
        return self.push_raw(payload, queue)

    def push_raw(
        self,
        payload: bytes | str,
        queue: str | None = None,
        options: PublishOptions | None = None,
    ) -> str:
        """Push a payload with explicit options.

        Options: ``exchange``, ``exchange_type``, ``routing_key``,
        ``attempts``, ``correlation_id``, ``headers``, ``priority``.
        """
        destination = self.destination(queue, options)
        message = self.create_message(payload, options)

        self.declare_destination(destination)

        with self.manager.guard() as channel:
            channel.publish(
                message,
                destination.exchange,
                destination.routing_key,
                mandatory=self.settings.mandatory,
            )

        self.logger.debug(
            f"Published {message.correlation_id} to "
            f"{destination.exchange or '(default)'}/{destination.routing_key}"
        )
        return t.cast(str, message.correlation_id)

    # ========================================================================
    # Delayed
    # ========================================================================

    def later(
        self, delay: Delay, payload: bytes | str, queue: str | None = None
    ) -> str:
        """Push a payload that becomes available after ``delay``."""
        return self.later_raw(delay, payload, queue)

    def later_raw(
        self,
        delay: Delay | None,
        payload: bytes | str,
        queue: str | None = None,
        attempts: int = 0,
        options: PublishOptions | None = None,
    ) -> str:
        options = {**(options or {}), "attempts": validate_attempts(attempts)}
        destination = self.destination(queue, options)
        plan = self.delay_strategy.plan(
            destination.label,
            delay,
            exchange=destination.exchange or None,
            routing_key=destination.routing_key,
        )

        # No delay: publish straight to the exchange or queue
        if plan is None:
            return self.push_raw(payload, queue, options)

        self.declare_destination(destination)
        self.topology.declare_queue(
            plan.queue, durable=True, auto_delete=False, arguments=plan.arguments
        )

        message = self.create_message(payload, options)

        # Publish directly on the holding queue through the default exchange
        with self.manager.guard() as channel:
            channel.publish(message, "", plan.queue, mandatory=self.settings.mandatory)

        self.logger.debug(
            f"Published {message.correlation_id} to {plan.queue} (ttl={plan.ttl}ms)"
        )
        return t.cast(str, message.correlation_id)

    # ========================================================================
    # Batched
    # ========================================================================

    def bulk(
        self,
        payloads: t.Iterable[bytes | str],
        queue: str | None = None,
        options: PublishOptions | None = None,
    ) -> list[str]:
        """Batch-publish payloads and flush once.

        Best effort: a fault part-way through is not rolled back.
        """
        correlation_ids = [
            self.bulk_raw(payload, queue, options) for payload in payloads
        ]

        with self.manager.guard() as channel:
            sent = channel.publish_batch()

        self.logger.debug(f"Flushed batch of {sent} messages")
        return correlation_ids

    def bulk_raw(
        self,
        payload: bytes | str,
        queue: str | None = None,
        options: PublishOptions | None = None,
    ) -> str:
        """Declare the destination and add one message to the pending batch."""
        destination = self.destination(queue, options)
        message = self.create_message(payload, options)

        self.declare_destination(destination)

        self.manager.primary_channel().batch_publish(
            message, destination.exchange, destination.routing_key
        )
        return t.cast(str, message.correlation_id)
