"""Configuration for pytest testing framework."""

import pytest
from _pytest.python import Function

from hutch.config import QueueSettings
from hutch.queue.connection import ConnectionManager
from hutch.queue.rabbitmq import RabbitMQQueue
from tests.mocks import FakeBroker


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line(
        "markers", "integration: mark test as requiring a running broker"
    )


def pytest_runtest_setup(item: Function) -> None:
    """Skip broker integration tests unless specifically requested."""
    if item.get_closest_marker("integration"):
        if not item.config.getoption("--run-external", default=False):
            pytest.skip("Skipping broker integration test. Use --run-external to run.")


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add command-line options."""
    parser.addoption(
        "--run-external",
        action="store_true",
        default=False,
        help="Run tests that require a running RabbitMQ broker",
    )


@pytest.fixture
def broker():
    """In-memory broker shared by every fake connection of a test."""
    return FakeBroker()


@pytest.fixture
def settings():
    """Queue settings with a non-blocking pop."""
    return QueueSettings(queue="default", receive_timeout=0)


@pytest.fixture
def manager(broker):
    """Connection manager wired to the fake broker."""
    manager = ConnectionManager(broker.connect)
    yield manager
    manager.close()


@pytest.fixture
def queue(broker, settings):
    """Queue client wired to the fake broker."""
    client = RabbitMQQueue(broker.connect, settings)
    yield client
    client.close()
