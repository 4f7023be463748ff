"""Consume path: fetch one message and wrap it as a job."""

import typing as t

from pika import exceptions as amqp_errors

from ._base import EntityKind
from .channel import is_not_found
from .job import RabbitMQJob

if t.TYPE_CHECKING:
    from hutch.config import QueueSettings

    from .connection import ConnectionManager
    from .publisher import Publisher
    from .topology import Topology


class Consumer:
    """Fetches single jobs and remembers the last one handed out."""

    def __init__(
        self,
        manager: "ConnectionManager",
        topology: "Topology",
        publisher: "Publisher",
        settings: "QueueSettings",
    ) -> None:
        self.manager = manager
        self.topology = topology
        self.publisher = publisher
        self.settings = settings
        self.logger = manager.logger
        self.current_job: RabbitMQJob | None = None

    def pop(self, queue: str | None = None) -> RabbitMQJob | None:
        """Fetch the next job, waiting up to ``receive_timeout`` seconds.

        Returns:
            The job, or None when the queue stayed empty or no longer exists

        Raises:
            LostConnectionError: If the channel or connection went away
        """
        queue = self.publisher.get_queue(queue)

        try:
            self.topology.declare_queue(
                queue, durable=True, arguments=self.settings.queue_arguments()
            )
            with self.manager.guard() as channel:
                message = channel.fetch_one(
                    queue,
                    timeout=self.settings.receive_timeout,
                    poll_interval=self.settings.poll_interval,
                )
        except amqp_errors.ChannelClosedByBroker as e:
            if not is_not_found(e):
                raise
            # The primary channel was already replaced by the guard
            self.topology.cache.evict(EntityKind.QUEUE, queue)
            self.logger.warning(f"Queue {queue} no longer exists: {e.reply_text}")
            return None

        if message is None:
            return None

        job = RabbitMQJob(self.publisher, channel, message, queue)
        self.current_job = job
        self.logger.debug(f"Fetched job {job.job_id} from {queue}")
        return job
