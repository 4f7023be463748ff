"""Exchange, queue and binding declaration with a per-client existence cache.

Declaring an entity on the broker is a full round-trip, so every declaration
goes through :class:`TopologyCache` first. Existence checks run on a
disposable probe channel: a passive declare of a missing entity makes the
broker close the channel with reply code 404, and that must never happen to
the long-lived primary channel.
"""

import typing as t

from pika import exceptions as amqp_errors

from ._base import EntityKind, Existence, ExchangeType
from .channel import is_not_found

if t.TYPE_CHECKING:
    from .connection import ConnectionManager


class TopologyCache:
    """Entities declared or verified during this client's lifetime.

    Entries are only ever removed by an explicit delete; nothing is
    re-verified against the broker once it is cached.
    """

    def __init__(self) -> None:
        self._exchanges: set[str] = set()
        self._queues: set[str] = set()
        self._bindings: set[tuple[str, str, str]] = set()

    def _entries(self, kind: EntityKind) -> set[str]:
        return self._exchanges if kind is EntityKind.EXCHANGE else self._queues

    def declared(self, kind: EntityKind, name: str) -> bool:
        return name in self._entries(kind)

    def mark_declared(self, kind: EntityKind, name: str) -> None:
        self._entries(kind).add(name)

    def bound(self, queue: str, exchange: str, routing_key: str = "") -> bool:
        return (queue, exchange, routing_key) in self._bindings

    def mark_bound(self, queue: str, exchange: str, routing_key: str = "") -> None:
        self._bindings.add((queue, exchange, routing_key))

    def evict(self, kind: EntityKind, name: str) -> None:
        """Forget an entity and every binding that references it."""
        self._entries(kind).discard(name)
        position = 1 if kind is EntityKind.EXCHANGE else 0
        self._bindings = {
            binding for binding in self._bindings if binding[position] != name
        }

    def clear(self) -> None:
        self._exchanges.clear()
        self._queues.clear()
        self._bindings.clear()

    def __len__(self) -> int:
        return len(self._exchanges) + len(self._queues) + len(self._bindings)


class Topology:
    """Cache-gated declaration operations shared by publisher, consumer and CLI."""

    def __init__(self, manager: "ConnectionManager", cache: TopologyCache) -> None:
        self.manager = manager
        self.cache = cache
        self.logger = manager.logger

    def exists(self, kind: EntityKind, name: str) -> bool:
        """Check if an exchange or queue is present on the broker.

        A cache hit answers without contacting the broker; a successful
        probe is remembered.
        """
        if self.cache.declared(kind, name):
            return True

        with self.manager.probe_channel() as channel:
            existence = channel.probe(kind, name)

        if existence is Existence.FOUND:
            self.cache.mark_declared(kind, name)
            return True
        return False

    def exchange_exists(self, name: str) -> bool:
        return self.exists(EntityKind.EXCHANGE, name)

    def queue_exists(self, name: str) -> bool:
        return self.exists(EntityKind.QUEUE, name)

    def declare_exchange(
        self,
        name: str,
        exchange_type: ExchangeType | str = ExchangeType.DIRECT,
        durable: bool = True,
        auto_delete: bool = False,
        internal: bool = False,
        arguments: dict[str, t.Any] | None = None,
    ) -> None:
        """Declare an exchange unless this client already declared it."""
        if self.cache.declared(EntityKind.EXCHANGE, name):
            return

        exchange_type = ExchangeType.parse(exchange_type)
        with self.manager.guard() as channel:
            channel.declare_exchange(
                name,
                exchange_type,
                durable=durable,
                auto_delete=auto_delete,
                internal=internal,
                arguments=arguments,
            )

        self.cache.mark_declared(EntityKind.EXCHANGE, name)
        self.logger.debug(f"Exchange declared: {name} ({exchange_type.value})")

    def declare_queue(
        self,
        name: str,
        durable: bool = True,
        auto_delete: bool = False,
        arguments: dict[str, t.Any] | None = None,
    ) -> None:
        """Declare a queue unless this client already declared it."""
        if self.cache.declared(EntityKind.QUEUE, name):
            return

        with self.manager.guard() as channel:
            channel.declare_queue(
                name, durable=durable, auto_delete=auto_delete, arguments=arguments
            )

        self.cache.mark_declared(EntityKind.QUEUE, name)
        self.logger.debug(f"Queue declared: {name}")

    def bind_queue(self, queue: str, exchange: str, routing_key: str = "") -> None:
        """Bind a queue to an exchange once per unique triple."""
        if self.cache.bound(queue, exchange, routing_key):
            return

        with self.manager.guard() as channel:
            channel.bind_queue(queue, exchange, routing_key)

        self.cache.mark_bound(queue, exchange, routing_key)
        self.logger.debug(f"Queue {queue} bound to {exchange} ({routing_key!r})")

    def delete_exchange(self, name: str, if_unused: bool = False) -> bool:
        """Delete an exchange, only when it is present on the broker.

        Returns:
            False when there was nothing to delete
        """
        if not self.exists(EntityKind.EXCHANGE, name):
            return False

        with self.manager.guard() as channel:
            channel.delete_exchange(name, if_unused=if_unused)
        self.cache.evict(EntityKind.EXCHANGE, name)

        self.logger.info(f"Exchange deleted: {name}")
        return True

    def delete_queue(
        self, name: str, if_unused: bool = False, if_empty: bool = False
    ) -> bool:
        """Delete a queue, only when it is present on the broker."""
        if not self.exists(EntityKind.QUEUE, name):
            return False

        with self.manager.guard() as channel:
            channel.delete_queue(name, if_unused=if_unused, if_empty=if_empty)
        self.cache.evict(EntityKind.QUEUE, name)

        self.logger.info(f"Queue deleted: {name}")
        return True

    def size(self, name: str) -> int:
        """Number of ready messages in a queue; 0 when the queue is missing."""
        if not self.exists(EntityKind.QUEUE, name):
            return 0

        with self.manager.probe_channel() as channel:
            return channel.message_count(name)

    def purge_queue(self, name: str) -> int:
        """Drop every ready message in a queue; 0 when the queue is missing."""
        if not self.exists(EntityKind.QUEUE, name):
            return 0

        with self.manager.probe_channel() as channel:
            try:
                purged = channel.purge_queue(name)
            except amqp_errors.ChannelClosedByBroker as e:
                if is_not_found(e):
                    self.cache.evict(EntityKind.QUEUE, name)
                    return 0
                raise

        self.logger.info(f"Queue purged: {name} ({purged} messages)")
        return purged
