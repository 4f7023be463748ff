"""hutch queue engine.

Turns a blocking pika connection into an at-least-once job queue:

- Publish: push, delayed push (TTL holding queues) and batched push
- Consume: pop one job, then delete, reject or release it
- Topology: cache-gated exchange, queue and binding declaration

Example Usage:
    ```python
    from hutch.queue.rabbitmq import RabbitMQQueue
    from hutch.config import resolve_connection

    queue = RabbitMQQueue(resolve_connection)
    queue.push(b"task data", "tasks")

    job = queue.pop("tasks")
    if job:
        # Process task
        job.delete()
    ```
"""

from hutch.queue._base import (
    ATTEMPTS_HEADER,
    EXCHANGE_PREFIX,
    EntityKind,
    ExchangeType,
    Existence,
    InvalidConfigurationError,
    JobMessage,
    JobState,
    JobStateError,
    LostConnectionError,
    QueueConnectionError,
    QueueDriverNotFound,
    QueueException,
    QueueOperationError,
    is_lost_connection,
)

__all__ = [
    "ATTEMPTS_HEADER",
    "EXCHANGE_PREFIX",
    "EntityKind",
    "ExchangeType",
    "Existence",
    "InvalidConfigurationError",
    "JobMessage",
    "JobState",
    "JobStateError",
    "LostConnectionError",
    "QueueConnectionError",
    "QueueDriverNotFound",
    "QueueException",
    "QueueOperationError",
    "is_lost_connection",
]
