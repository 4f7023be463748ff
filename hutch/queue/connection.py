"""Ownership of the physical connection and the primary channel.

The manager never retries a failed operation. When an operation on the
primary channel fails because the broker closed the channel (any protocol
fault does that in AMQP 0-9-1) or because the link went away, the primary
channel is replaced before the error reaches the caller, so the caller's
*next* operation runs on a fresh channel.
"""

import typing as t
from contextlib import contextmanager, suppress

import pika
from pika import exceptions as amqp_errors

from hutch.logger import get_logger

from ._base import InvalidConfigurationError, LostConnectionError, QueueConnectionError
from .channel import LOST_CONNECTION_ERRORS, BrokerChannel

if t.TYPE_CHECKING:
    from loguru import Logger

ConnectionResolver = t.Callable[[], pika.BlockingConnection]


class ConnectionManager:
    """Lazily connects and hands out the primary and probe channels."""

    def __init__(
        self,
        resolver: ConnectionResolver | None,
        logger: "Logger | None" = None,
    ) -> None:
        if resolver is None:
            raise InvalidConfigurationError("A connection resolver is required")

        self._resolver = resolver
        self._connection: pika.BlockingConnection | None = None
        self._channel: BrokerChannel | None = None
        self.logger = logger or get_logger(__name__)

    # ========================================================================
    # Connection
    # ========================================================================

    @property
    def is_connected(self) -> bool:
        return self._connection is not None and bool(self._connection.is_open)

    def connection(self) -> pika.BlockingConnection:
        """Return the open connection, establishing it on first use."""
        if self.is_connected:
            return t.cast(pika.BlockingConnection, self._connection)

        try:
            self._connection = self._resolver()
        except amqp_errors.AMQPError as e:
            self.logger.exception(f"Failed to connect to RabbitMQ: {e}")
            raise QueueConnectionError(
                f"Failed to establish RabbitMQ connection: {e}",
                original_error=e,
            ) from e

        self._channel = None
        self.logger.info("RabbitMQ connection established")
        return self._connection

    def _open_channel(self) -> BrokerChannel:
        connection = self.connection()
        try:
            raw = connection.channel()
        except LOST_CONNECTION_ERRORS as e:
            self._connection = None
            raise LostConnectionError(str(e) or type(e).__name__, original_error=e) from e
        return BrokerChannel(raw, sleep=connection.sleep)

    # ========================================================================
    # Channels
    # ========================================================================

    def primary_channel(self) -> BrokerChannel:
        """Return the long-lived channel, replacing it if it was closed."""
        if self._channel is None or not self._channel.is_open:
            if self._channel is not None:
                self.logger.warning("Primary channel was closed, opening a new one")
            self._channel = self._open_channel()
        return self._channel

    def replace_primary_channel(self) -> None:
        """Drop the primary channel and open a fresh one when the link allows."""
        stale, self._channel = self._channel, None
        if stale is not None and stale.is_open:
            with suppress(*LOST_CONNECTION_ERRORS, LostConnectionError):
                stale.close()

        if not self.is_connected:
            self.logger.warning("Connection is closed, it will be re-established on next use")
            self._connection = None
            return

        try:
            self._channel = self._open_channel()
        except LostConnectionError as e:
            self.logger.warning(f"Could not open a replacement channel: {e}")

    @contextmanager
    def guard(self) -> t.Iterator[BrokerChannel]:
        """Run one operation on the primary channel.

        Broker faults and lost connections replace the primary channel and
        are then re-raised unchanged.
        """
        channel = self.primary_channel()
        try:
            yield channel
        except amqp_errors.ChannelClosedByBroker as e:
            self.logger.warning(
                f"Broker closed the primary channel ({e.reply_code}): {e.reply_text}"
            )
            self.replace_primary_channel()
            raise
        except LostConnectionError as e:
            self.logger.warning(str(e))
            self.replace_primary_channel()
            raise

    @contextmanager
    def probe_channel(self) -> t.Iterator[BrokerChannel]:
        """Open a disposable channel that is closed on every exit path."""
        channel = self._open_channel()
        try:
            yield channel
        finally:
            if channel.is_open:
                with suppress(*LOST_CONNECTION_ERRORS):
                    channel.close()

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def reconnect(self) -> None:
        """Close the current link; the next operation connects again."""
        self.close()

    def close(self) -> None:
        """Close the primary channel and the connection, ignoring close errors."""
        channel, self._channel = self._channel, None
        connection, self._connection = self._connection, None

        if channel is not None and channel.is_open:
            with suppress(*LOST_CONNECTION_ERRORS):
                channel.close()

        if connection is not None and connection.is_open:
            try:
                connection.close()
            except LOST_CONNECTION_ERRORS as e:
                self.logger.debug(f"Ignoring error while closing connection: {e}")

        if connection is not None:
            self.logger.info("RabbitMQ connection closed")
