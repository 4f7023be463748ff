"""Connection and queue settings.

Both settings classes read ``RABBITMQ_*`` environment variables, so a
deployment can be configured without code::

    RABBITMQ_HOST=rabbit RABBITMQ_QUEUE=emails python worker.py
"""

import typing as t

import pika
from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from hutch.queue._base import ExchangeType, InvalidConfigurationError


class ConnectionSettings(BaseSettings):
    """How to reach the broker. ``url`` wins over the individual fields."""

    model_config = SettingsConfigDict(env_prefix="RABBITMQ_", extra="ignore")

    url: SecretStr | None = None
    host: str = "127.0.0.1"
    port: int = Field(default=5672, gt=0, lt=65536)
    user: str = "guest"
    password: SecretStr = SecretStr("guest")
    vhost: str = "/"

    heartbeat: int | None = Field(default=60, ge=0)
    blocked_connection_timeout: float | None = Field(default=300.0, gt=0)
    connection_attempts: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=2.0, ge=0)
    socket_timeout: float = Field(default=10.0, gt=0)

    def parameters(self) -> pika.connection.Parameters:
        """Build pika connection parameters."""
        if self.url is not None:
            return pika.URLParameters(self.url.get_secret_value())

        return pika.ConnectionParameters(
            host=self.host,
            port=self.port,
            virtual_host=self.vhost,
            credentials=pika.PlainCredentials(
                self.user, self.password.get_secret_value()
            ),
            heartbeat=self.heartbeat,
            blocked_connection_timeout=self.blocked_connection_timeout,
            connection_attempts=self.connection_attempts,
            retry_delay=self.retry_delay,
            socket_timeout=self.socket_timeout,
        )


def resolve_connection(settings: ConnectionSettings | None = None) -> pika.BlockingConnection:
    """Open a blocking connection for the given settings."""
    settings = settings or ConnectionSettings()
    return pika.BlockingConnection(settings.parameters())


class QueueSettings(BaseSettings):
    """Queue client configuration."""

    model_config = SettingsConfigDict(env_prefix="RABBITMQ_", extra="ignore")

    driver: str = "rabbitmq"
    queue: str = Field(default="default", min_length=1)

    # Routing: publish through this exchange instead of straight to the queue
    exchange: str | None = None
    exchange_type: ExchangeType = ExchangeType.DIRECT
    exchange_routing_key: str = "{queue}"

    # Arguments for queues declared on first publish/pop
    max_priority: int | None = Field(default=None, ge=1, le=255)
    quorum: bool = False

    mandatory: bool = True

    # Bounded wait for pop, in seconds; 0 means a single non-blocking attempt
    receive_timeout: float = Field(default=1.0, ge=0)
    poll_interval: float = Field(default=0.1, gt=0)

    connection: ConnectionSettings = Field(default_factory=ConnectionSettings)

    @field_validator("driver")
    @classmethod
    def _registered_driver(cls, value: str) -> str:
        from hutch.discovery import list_drivers

        if value not in list_drivers():
            msg = f"Queue driver [{value}] is not supported."
            raise ValueError(msg)
        return value

    def routing_key(self, queue: str) -> str:
        return self.exchange_routing_key.format(queue=queue)

    def queue_arguments(self) -> dict[str, t.Any]:
        """Arguments applied to queues this client declares implicitly."""
        arguments: dict[str, t.Any] = {}
        if self.max_priority:
            arguments["x-max-priority"] = self.max_priority
        if self.quorum:
            arguments["x-queue-type"] = "quorum"
        return arguments


def load_settings(**overrides: t.Any) -> QueueSettings:
    """Build queue settings, failing fast on invalid values.

    Raises:
        InvalidConfigurationError: If any field is invalid or the driver is unknown
    """
    try:
        return QueueSettings(**overrides)
    except ValidationError as e:
        raise InvalidConfigurationError(
            f"Invalid queue configuration: {e}", original_error=e
        ) from e
