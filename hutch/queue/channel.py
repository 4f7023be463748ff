"""Synchronous facade over one pika channel.

Every method is a single blocking RPC (or, for batches, a local append).
Closed-channel and closed-connection conditions raised by pika are
translated into :class:`LostConnectionError`; broker faults
(``ChannelClosedByBroker``) propagate unchanged so callers can inspect
``reply_code``.
"""

import time
import typing as t
from contextlib import contextmanager

from pika import exceptions as amqp_errors
from pika.adapters.blocking_connection import BlockingChannel

from ._base import (
    NOT_FOUND_REPLY_CODE,
    EntityKind,
    Existence,
    ExchangeType,
    JobMessage,
    LostConnectionError,
)

# Closed channel/connection conditions, as opposed to broker-reported faults.
LOST_CONNECTION_ERRORS: tuple[type[Exception], ...] = (
    amqp_errors.ChannelWrongStateError,
    amqp_errors.ChannelClosed,
    amqp_errors.ConnectionClosed,
    amqp_errors.ConnectionWrongStateError,
    amqp_errors.StreamLostError,
    amqp_errors.AMQPConnectionError,
)


def is_not_found(error: BaseException) -> bool:
    """Check for a broker fault carrying the 404 reply code."""
    return (
        isinstance(error, amqp_errors.ChannelClosedByBroker)
        and error.reply_code == NOT_FOUND_REPLY_CODE
    )


class BrokerChannel:
    """Request/response wrapper around one pika ``BlockingChannel``."""

    def __init__(
        self,
        channel: BlockingChannel,
        sleep: t.Callable[[float], None] | None = None,
    ) -> None:
        self._channel = channel
        self._sleep = sleep or time.sleep
        self._batch: list[tuple[JobMessage, str, str]] = []

    @property
    def raw(self) -> BlockingChannel:
        return self._channel

    @property
    def is_open(self) -> bool:
        return bool(self._channel.is_open)

    @property
    def pending_batch(self) -> int:
        return len(self._batch)

    @contextmanager
    def _rpc(self) -> t.Iterator[None]:
        try:
            yield
        except amqp_errors.ChannelClosedByBroker:
            raise
        except LOST_CONNECTION_ERRORS as e:
            raise LostConnectionError(str(e) or type(e).__name__, original_error=e) from e

    # ========================================================================
    # Topology
    # ========================================================================

    def declare_exchange(
        self,
        name: str,
        exchange_type: ExchangeType | str = ExchangeType.DIRECT,
        durable: bool = True,
        auto_delete: bool = False,
        internal: bool = False,
        arguments: dict[str, t.Any] | None = None,
    ) -> None:
        with self._rpc():
            self._channel.exchange_declare(
                exchange=name,
                exchange_type=ExchangeType.parse(exchange_type).value,
                durable=durable,
                auto_delete=auto_delete,
                internal=internal,
                arguments=arguments or None,
            )

    def declare_queue(
        self,
        name: str,
        durable: bool = True,
        auto_delete: bool = False,
        arguments: dict[str, t.Any] | None = None,
    ) -> int:
        """Declare a queue and return its current message count."""
        with self._rpc():
            frame = self._channel.queue_declare(
                queue=name,
                durable=durable,
                auto_delete=auto_delete,
                arguments=arguments or None,
            )
        return frame.method.message_count

    def bind_queue(self, queue: str, exchange: str, routing_key: str = "") -> None:
        with self._rpc():
            self._channel.queue_bind(
                queue=queue, exchange=exchange, routing_key=routing_key
            )

    def delete_exchange(self, name: str, if_unused: bool = False) -> None:
        with self._rpc():
            self._channel.exchange_delete(exchange=name, if_unused=if_unused)

    def delete_queue(
        self, name: str, if_unused: bool = False, if_empty: bool = False
    ) -> None:
        with self._rpc():
            self._channel.queue_delete(
                queue=name, if_unused=if_unused, if_empty=if_empty
            )

    def purge_queue(self, name: str) -> int:
        with self._rpc():
            frame = self._channel.queue_purge(queue=name)
        return frame.method.message_count

    def probe(self, kind: EntityKind, name: str) -> Existence:
        """Passively declare an entity to find out whether it exists.

        Only meant for probe channels: on a miss the broker closes the channel.
        """
        try:
            with self._rpc():
                if kind is EntityKind.EXCHANGE:
                    self._channel.exchange_declare(exchange=name, passive=True)
                else:
                    self._channel.queue_declare(queue=name, passive=True)
        except amqp_errors.ChannelClosedByBroker as e:
            if is_not_found(e):
                return Existence.NOT_FOUND
            raise
        return Existence.FOUND

    def message_count(self, name: str) -> int:
        """Passive-declare a queue and return its ready message count."""
        try:
            with self._rpc():
                frame = self._channel.queue_declare(queue=name, passive=True)
        except amqp_errors.ChannelClosedByBroker as e:
            if is_not_found(e):
                return 0
            raise
        return frame.method.message_count

    # ========================================================================
    # Publishing
    # ========================================================================

    def publish(
        self,
        message: JobMessage,
        exchange: str = "",
        routing_key: str = "",
        mandatory: bool = False,
    ) -> None:
        with self._rpc():
            self._channel.basic_publish(
                exchange=exchange,
                routing_key=routing_key,
                body=message.body,
                properties=message.to_properties(),
                mandatory=mandatory,
            )

    def batch_publish(
        self, message: JobMessage, exchange: str = "", routing_key: str = ""
    ) -> None:
        """Queue a message locally until :meth:`publish_batch` is called."""
        self._batch.append((message, exchange, routing_key))

    def publish_batch(self) -> int:
        """Send every batched message in submission order.

        Not atomic: a failure part-way leaves the earlier messages delivered
        and drops the rest of the batch.
        """
        batch, self._batch = self._batch, []
        for message, exchange, routing_key in batch:
            self.publish(message, exchange, routing_key)
        return len(batch)

    # ========================================================================
    # Consuming
    # ========================================================================

    def fetch_one(
        self,
        queue: str,
        timeout: float = 0.0,
        poll_interval: float = 0.1,
    ) -> JobMessage | None:
        """Fetch at most one message, waiting up to ``timeout`` seconds.

        Returns None when nothing arrived before the wait elapsed.
        """
        deadline = time.monotonic() + max(timeout, 0.0)
        while True:
            with self._rpc():
                method, properties, body = self._channel.basic_get(
                    queue=queue, auto_ack=False
                )
            if method is not None:
                return JobMessage.from_delivery(method, properties, body, queue=queue)

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            self._sleep(min(poll_interval, remaining))

    def ack(self, delivery_tag: int) -> None:
        with self._rpc():
            self._channel.basic_ack(delivery_tag=delivery_tag)

    def reject(self, delivery_tag: int, requeue: bool = False) -> None:
        with self._rpc():
            self._channel.basic_reject(delivery_tag=delivery_tag, requeue=requeue)

    def close(self) -> None:
        self._batch.clear()
        if self._channel.is_open:
            self._channel.close()
