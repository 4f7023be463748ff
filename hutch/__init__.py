"""hutch: a synchronous RabbitMQ job queue on top of pika."""

from hutch.config import (
    ConnectionSettings,
    QueueSettings,
    load_settings,
    resolve_connection,
)
from hutch.discovery import create_queue, list_drivers, register_driver
from hutch.logger import configure_logging, get_logger
from hutch.manager import QueueManager
from hutch.queue import (
    EntityKind,
    ExchangeType,
    InvalidConfigurationError,
    JobStateError,
    LostConnectionError,
    QueueException,
    is_lost_connection,
)
from hutch.queue.job import RabbitMQJob
from hutch.queue.rabbitmq import RabbitMQQueue

__version__ = "0.1.0"

__all__ = [
    "ConnectionSettings",
    "EntityKind",
    "ExchangeType",
    "InvalidConfigurationError",
    "JobStateError",
    "LostConnectionError",
    "QueueException",
    "QueueManager",
    "QueueSettings",
    "RabbitMQJob",
    "RabbitMQQueue",
    "configure_logging",
    "create_queue",
    "get_logger",
    "is_lost_connection",
    "list_drivers",
    "load_settings",
    "register_driver",
    "resolve_connection",
]
