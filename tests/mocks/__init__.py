"""Mock implementations for testing."""

from tests.mocks.amqp import (
    FakeBroker,
    FakeChannel,
    FakeConnection,
    FakeExchange,
    FakeQueue,
    StoredMessage,
)

__all__ = [
    "FakeBroker",
    "FakeChannel",
    "FakeConnection",
    "FakeExchange",
    "FakeQueue",
    "StoredMessage",
]
