"""Tests for the shared queue types."""

import pika
import pytest
from pika import exceptions as amqp_errors
from pika import spec

from hutch.queue._base import (
    ATTEMPTS_HEADER,
    ExchangeType,
    Existence,
    InvalidConfigurationError,
    JobMessage,
    LostConnectionError,
    QueueConnectionError,
    QueueDriverNotFound,
    QueueException,
    generate_correlation_id,
    is_lost_connection,
)


@pytest.mark.unit
class TestExceptions:
    """Test the exception hierarchy."""

    def test_lost_connection_prefix(self):
        """Test lost connection messages always start with the same phrase."""
        error = LostConnectionError("stream reset")

        assert str(error) == "Lost connection: stream reset"
        assert isinstance(error, QueueConnectionError)

    def test_lost_connection_prefix_not_repeated(self):
        """Test a message that already has the prefix is kept as is."""
        assert str(LostConnectionError("Lost connection to broker")) == (
            "Lost connection to broker"
        )

    def test_original_error(self):
        """Test the wrapped error is kept."""
        cause = OSError("boom")

        error = QueueException("failed", original_error=cause)

        assert error.original_error is cause

    def test_configuration_error_is_value_error(self):
        """Test configuration errors can be caught as ValueError."""
        with pytest.raises(ValueError):
            raise InvalidConfigurationError("bad")

    def test_driver_not_found(self):
        """Test the driver name is part of the message."""
        error = QueueDriverNotFound("sqs")

        assert error.driver == "sqs"
        assert str(error) == "Queue driver [sqs] is not supported."


@pytest.mark.unit
class TestIsLostConnection:
    """Test lost connection classification."""

    @pytest.mark.parametrize(
        "error",
        [
            LostConnectionError("gone"),
            amqp_errors.StreamLostError("Connection reset by peer"),
            RuntimeError("Broken pipe"),
            QueueException("wrapped", original_error=OSError("Connection refused")),
        ],
    )
    def test_lost(self, error):
        """Test errors that mean the link is gone."""
        assert is_lost_connection(error)

    def test_cause_chain(self):
        """Test the __cause__ chain is followed."""
        try:
            try:
                raise OSError("server has gone away")
            except OSError as e:
                raise RuntimeError("publish failed") from e
        except RuntimeError as e:
            error = e

        assert is_lost_connection(error)

    @pytest.mark.parametrize(
        "error",
        [None, ValueError("bad value"), amqp_errors.ChannelClosedByBroker(404, "NOT_FOUND")],
    )
    def test_not_lost(self, error):
        """Test other errors are not classified as lost connections."""
        assert not is_lost_connection(error)


@pytest.mark.unit
class TestEnums:
    """Test enum helpers."""

    def test_exchange_type_parse(self):
        """Test exchange types parse from strings."""
        assert ExchangeType.parse("fanout") is ExchangeType.FANOUT
        assert ExchangeType.parse(ExchangeType.TOPIC) is ExchangeType.TOPIC

    def test_exchange_type_parse_invalid(self):
        """Test an unknown exchange type is a configuration error."""
        with pytest.raises(InvalidConfigurationError, match="bogus"):
            ExchangeType.parse("bogus")

    def test_existence_truthiness(self):
        """Test Existence can be used as a boolean."""
        assert Existence.FOUND
        assert not Existence.NOT_FOUND


@pytest.mark.unit
class TestJobMessage:
    """Test JobMessage construction and conversion."""

    def test_create_encodes_text(self):
        """Test a text body is UTF-8 encoded."""
        message = JobMessage.create("héllo")

        assert message.body == "héllo".encode()
        assert message.correlation_id
        assert message.headers == {}

    def test_create_stamps_attempts(self):
        """Test a non-zero attempt count is written to the header."""
        message = JobMessage.create(b"A", attempts=3, headers={"tenant": "acme"})

        assert message.headers == {"tenant": "acme", ATTEMPTS_HEADER: 3}

    def test_create_zero_attempts_drops_header(self):
        """Test attempts=0 removes a stale header."""
        message = JobMessage.create(b"A", headers={ATTEMPTS_HEADER: 7})

        assert ATTEMPTS_HEADER not in message.headers

    def test_create_keeps_correlation_id(self):
        """Test an explicit correlation id is kept."""
        assert JobMessage.create(b"A", correlation_id="abc").correlation_id == "abc"

    def test_correlation_ids_are_unique(self):
        """Test generated ids differ."""
        assert generate_correlation_id() != generate_correlation_id()

    def test_to_properties(self):
        """Test conversion to persistent pika properties."""
        properties = JobMessage.create(b"A", attempts=2, priority=5).to_properties()

        assert properties.delivery_mode == pika.DeliveryMode.Persistent.value
        assert properties.priority == 5
        assert properties.headers == {ATTEMPTS_HEADER: 2}

    def test_to_properties_without_headers(self):
        """Test empty headers are sent as None."""
        message = JobMessage(body=b"A", persistent=False)

        properties = message.to_properties()

        assert properties.headers is None
        assert properties.delivery_mode == pika.DeliveryMode.Transient.value

    def test_from_delivery(self):
        """Test a basic_get result becomes a fetched message."""
        method = spec.Basic.GetOk(
            delivery_tag=7, redelivered=True, exchange="", routing_key="jobs"
        )
        properties = pika.BasicProperties(
            correlation_id="abc",
            headers={ATTEMPTS_HEADER: 2},
            delivery_mode=pika.DeliveryMode.Persistent.value,
        )

        message = JobMessage.from_delivery(method, properties, b"A", queue="jobs")

        assert message.body == b"A"
        assert message.delivery_tag == 7
        assert message.redelivered
        assert message.routing_key == "jobs"
        assert message.queue == "jobs"
        assert message.correlation_id == "abc"
        assert message.headers == {ATTEMPTS_HEADER: 2}
        assert message.persistent

    def test_from_delivery_without_properties(self):
        """Test missing properties and body fall back to defaults."""
        method = spec.Basic.GetOk(delivery_tag=1, exchange=None, routing_key=None)

        message = JobMessage.from_delivery(method, None, None)

        assert message.body == b""
        assert message.headers == {}
        assert message.exchange == ""
        assert not message.persistent
