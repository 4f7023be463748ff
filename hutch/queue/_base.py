"""Base types for the hutch queue engine.

This module holds the pieces every other queue module shares: the entity and
state enums, the exception hierarchy, and the message model that travels
between the publisher, the broker channel and the job wrapper.

Key Design Principles:
1. A "missing" broker entity is a result (``Existence.NOT_FOUND``), not an error
2. Lost connections always surface as ``LostConnectionError`` with a stable message
3. Any other broker fault propagates unchanged from pika
"""

import typing as t
from enum import Enum
from uuid import uuid4

import pika
from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "ATTEMPTS_HEADER",
    "EXCHANGE_PREFIX",
    "LOST_CONNECTION_PHRASES",
    "EntityKind",
    "Existence",
    "ExchangeType",
    "InvalidConfigurationError",
    "JobMessage",
    "JobState",
    "JobStateError",
    "LostConnectionError",
    "QueueConnectionError",
    "QueueDriverNotFound",
    "QueueException",
    "QueueOperationError",
    "generate_correlation_id",
    "is_lost_connection",
]


# ============================================================================
# Enums and Constants
# ============================================================================

# Header carrying the retry-attempt counter; stable across publish and requeue.
ATTEMPTS_HEADER = "x-attempts"

# Destination alias meaning "route through this exchange" instead of a queue.
EXCHANGE_PREFIX = "exchange:"

NOT_FOUND_REPLY_CODE = 404

# Phrases a supervisor can match on without knowing anything about AMQP.
LOST_CONNECTION_PHRASES = (
    "lost connection",
    "server has gone away",
    "connection reset",
    "broken pipe",
    "connection refused",
    "connection closed",
    "channel closed",
)


class ExchangeType(str, Enum):
    """AMQP exchange types."""

    DIRECT = "direct"
    FANOUT = "fanout"
    TOPIC = "topic"
    HEADERS = "headers"

    @classmethod
    def parse(cls, value: "ExchangeType | str") -> "ExchangeType":
        try:
            return cls(value)
        except ValueError as e:
            raise InvalidConfigurationError(
                f"Unsupported exchange type: {value!r}", original_error=e
            ) from e


class EntityKind(str, Enum):
    """Broker entities whose existence is tracked by the topology cache."""

    EXCHANGE = "exchange"
    QUEUE = "queue"


class Existence(Enum):
    """Outcome of an existence probe."""

    FOUND = "found"
    NOT_FOUND = "not_found"

    def __bool__(self) -> bool:
        return self is Existence.FOUND


class JobState(str, Enum):
    """Lifecycle states of a fetched job."""

    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    REJECTED = "rejected"
    RELEASED = "released"


# ============================================================================
# Exception Hierarchy
# ============================================================================


class QueueException(Exception):
    """Base exception for all queue-related errors."""

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.original_error = original_error


class QueueConnectionError(QueueException):
    """Raised when the connection to the broker cannot be used."""


class LostConnectionError(QueueConnectionError):
    """Raised when a channel or connection was closed underneath an operation.

    The message always starts with ``"Lost connection"`` so generic
    supervisors can classify it by text alone.
    """

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
    ) -> None:
        if not message.lower().startswith("lost connection"):
            message = f"Lost connection: {message}"
        super().__init__(message, original_error=original_error)


class QueueOperationError(QueueException):
    """Raised when a queue operation cannot be performed."""


class JobStateError(QueueOperationError):
    """Raised when a terminal operation is called on a finished job."""


class InvalidConfigurationError(QueueException, ValueError):
    """Raised when settings, drivers or operation arguments are invalid."""


class QueueDriverNotFound(InvalidConfigurationError):
    """Raised when a queue driver name is not registered."""

    def __init__(self, driver: str) -> None:
        self.driver = driver
        super().__init__(f"Queue driver [{driver}] is not supported.")


def is_lost_connection(error: BaseException | None) -> bool:
    """Check whether an error (or anything it wraps) means a lost connection."""
    seen: set[int] = set()
    while error is not None and id(error) not in seen:
        seen.add(id(error))
        if isinstance(error, LostConnectionError):
            return True
        message = str(error).lower()
        if any(phrase in message for phrase in LOST_CONNECTION_PHRASES):
            return True
        error = getattr(error, "original_error", None) or error.__cause__
    return False


def generate_correlation_id() -> str:
    return uuid4().hex


# ============================================================================
# Data Models
# ============================================================================


class JobMessage(BaseModel):
    """One unit of payload, either about to be published or just fetched.

    The body is opaque: hutch never serializes or parses it.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    body: bytes = Field(description="Opaque message payload")
    headers: dict[str, t.Any] = Field(default_factory=dict)
    correlation_id: str | None = None
    message_id: str | None = None
    priority: int | None = None
    content_type: str | None = None
    persistent: bool = True

    # Delivery information, set only on fetched messages
    delivery_tag: int | None = None
    redelivered: bool = False
    exchange: str = ""
    routing_key: str = ""
    queue: str | None = None

    @classmethod
    def create(
        cls,
        body: bytes | str,
        attempts: int = 0,
        correlation_id: str | None = None,
        headers: dict[str, t.Any] | None = None,
        priority: int | None = None,
    ) -> "JobMessage":
        """Build an outgoing message stamped with the attempt counter.

        An attempt count of 0 leaves the header out, so the consumer side
        reads its default of 1.
        """
        if isinstance(body, str):
            body = body.encode("utf-8")

        message_headers = dict(headers or {})
        if attempts:
            message_headers[ATTEMPTS_HEADER] = attempts
        else:
            message_headers.pop(ATTEMPTS_HEADER, None)

        return cls(
            body=body,
            headers=message_headers,
            correlation_id=correlation_id or generate_correlation_id(),
            priority=priority,
        )

    @classmethod
    def from_delivery(
        cls,
        method: t.Any,
        properties: pika.BasicProperties | None,
        body: bytes | None,
        queue: str | None = None,
    ) -> "JobMessage":
        """Build a message from a ``basic_get`` result triple."""
        properties = properties or pika.BasicProperties()
        return cls(
            body=body or b"",
            headers=dict(properties.headers or {}),
            correlation_id=properties.correlation_id,
            message_id=properties.message_id,
            priority=properties.priority,
            content_type=properties.content_type,
            persistent=properties.delivery_mode == pika.DeliveryMode.Persistent.value,
            delivery_tag=method.delivery_tag,
            redelivered=bool(method.redelivered),
            exchange=method.exchange or "",
            routing_key=method.routing_key or "",
            queue=queue,
        )

    def to_properties(self) -> pika.BasicProperties:
        """Convert to pika properties for ``basic_publish``."""
        delivery_mode = (
            pika.DeliveryMode.Persistent if self.persistent else pika.DeliveryMode.Transient
        )
        return pika.BasicProperties(
            delivery_mode=delivery_mode.value,
            correlation_id=self.correlation_id,
            message_id=self.message_id,
            priority=self.priority,
            content_type=self.content_type,
            headers=self.headers or None,
        )
