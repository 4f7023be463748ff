"""RabbitMQ queue client.

The client a worker loop holds. It composes one connection manager, one
topology cache, a publisher and a consumer, and exposes every operation a
worker or a tooling script needs.

Example:
    >>> from hutch import RabbitMQQueue, resolve_connection
    >>> with RabbitMQQueue(resolve_connection) as queue:
    ...     queue.push(b"payload", "jobs")
    ...     job = queue.pop("jobs")
    ...     if job is not None:
    ...         job.delete()
"""

import typing as t

from pika import exceptions as amqp_errors

from hutch.cleanup import CleanupMixin
from hutch.config import QueueSettings
from hutch.logger import get_logger

from ._base import EntityKind, ExchangeType, QueueException
from .connection import ConnectionManager, ConnectionResolver
from .consumer import Consumer
from .delay import Delay, DelayStrategy
from .job import RabbitMQJob
from .publisher import PublishOptions, Publisher
from .topology import Topology, TopologyCache


class RabbitMQQueue(CleanupMixin):
    """Synchronous RabbitMQ job queue client.

    Not safe for concurrent use: run one client per thread or process.
    """

    def __init__(
        self,
        connection_resolver: ConnectionResolver | None,
        settings: QueueSettings | None = None,
        delay_strategy: DelayStrategy | None = None,
    ) -> None:
        super().__init__()

        self.settings = settings or QueueSettings()
        self.logger = get_logger(__name__)

        # Raises InvalidConfigurationError without a resolver
        self.manager = ConnectionManager(connection_resolver, logger=self.logger)
        self.cache = TopologyCache()
        self.topology = Topology(self.manager, self.cache)
        self.publisher = Publisher(
            self.manager, self.topology, self.settings, delay_strategy
        )
        self.consumer = Consumer(
            self.manager, self.topology, self.publisher, self.settings
        )

        self.register_resource(self.manager)

    def get_queue(self, queue: str | None = None) -> str:
        return self.publisher.get_queue(queue)

    @property
    def current_job(self) -> RabbitMQJob | None:
        return self.consumer.current_job

    # ========================================================================
    # Worker API
    # ========================================================================

    def push(self, payload: bytes | str, queue: str | None = None) -> str:
        return self.publisher.push(payload, queue)

    def push_raw(
        self,
        payload: bytes | str,
        queue: str | None = None,
        options: PublishOptions | None = None,
    ) -> str:
        return self.publisher.push_raw(payload, queue, options)

    def later(
        self, delay: Delay, payload: bytes | str, queue: str | None = None
    ) -> str:
        return self.publisher.later(delay, payload, queue)

    def later_raw(
        self,
        delay: Delay | None,
        payload: bytes | str,
        queue: str | None = None,
        attempts: int = 0,
        options: PublishOptions | None = None,
    ) -> str:
        return self.publisher.later_raw(delay, payload, queue, attempts, options)

    def bulk(
        self,
        payloads: t.Iterable[bytes | str],
        queue: str | None = None,
        options: PublishOptions | None = None,
    ) -> list[str]:
        return self.publisher.bulk(payloads, queue, options)

    def bulk_raw(
        self,
        payload: bytes | str,
        queue: str | None = None,
        options: PublishOptions | None = None,
    ) -> str:
        return self.publisher.bulk_raw(payload, queue, options)

    def pop(self, queue: str | None = None) -> RabbitMQJob | None:
        return self.consumer.pop(queue)

    def ack(self, job: RabbitMQJob) -> None:
        job.delete()

    def reject(self, job: RabbitMQJob, requeue: bool = False) -> None:
        job.reject(requeue=requeue)

    def clear(self, queue: str | None = None) -> int:
        """Purge a queue and return how many messages were dropped."""
        return self.topology.purge_queue(self.get_queue(queue))

    def size(self, queue: str | None = None) -> int:
        return self.topology.size(self.get_queue(queue))

    # ========================================================================
    # Topology API
    # ========================================================================

    def exists(self, kind: EntityKind | str, name: str) -> bool:
        return self.topology.exists(EntityKind(kind), name)

    def declare_exchange(
        self,
        name: str,
        exchange_type: ExchangeType | str = ExchangeType.DIRECT,
        durable: bool = True,
        auto_delete: bool = False,
        internal: bool = False,
        arguments: dict[str, t.Any] | None = None,
    ) -> None:
        self.topology.declare_exchange(
            name, exchange_type, durable, auto_delete, internal, arguments
        )

    def declare_queue(
        self,
        name: str,
        durable: bool = True,
        auto_delete: bool = False,
        arguments: dict[str, t.Any] | None = None,
    ) -> None:
        self.topology.declare_queue(name, durable, auto_delete, arguments)

    def bind_queue(self, queue: str, exchange: str, routing_key: str = "") -> None:
        self.topology.bind_queue(queue, exchange, routing_key)

    def delete_exchange(self, name: str, if_unused: bool = False) -> bool:
        return self.topology.delete_exchange(name, if_unused)

    def delete_queue(
        self, name: str, if_unused: bool = False, if_empty: bool = False
    ) -> bool:
        return self.topology.delete_queue(name, if_unused, if_empty)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def close(self) -> None:
        """Requeue a still-active current job, then close the connection.

        Safe to call more than once; a later operation reconnects.
        """
        job, self.consumer.current_job = self.consumer.current_job, None
        if job is not None and job.is_active():
            try:
                job.reject(requeue=True)
            except (QueueException, amqp_errors.AMQPError) as e:
                self.logger.warning(f"Could not requeue job {job.job_id} on close: {e}")

        self.cleanup()
        self.cache.clear()

    def __exit__(self, exc_type: t.Any, exc_val: t.Any, exc_tb: t.Any) -> None:
        self.close()
