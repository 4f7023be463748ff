"""Queue driver registry.

Maps a driver identifier from configuration to the function that builds
the queue client. The registry is closed: an unknown identifier fails when
settings load, never at first use.
"""

import typing as t
from functools import partial

from hutch.logger import get_logger
from hutch.queue._base import InvalidConfigurationError, QueueDriverNotFound

if t.TYPE_CHECKING:
    from hutch.config import QueueSettings
    from hutch.queue.connection import ConnectionResolver
    from hutch.queue.rabbitmq import RabbitMQQueue

logger = get_logger(__name__)

DriverCreator = t.Callable[["QueueSettings", "ConnectionResolver | None"], t.Any]


def _create_rabbitmq_queue(
    settings: "QueueSettings",
    resolver: "ConnectionResolver | None" = None,
) -> "RabbitMQQueue":
    from hutch.config import resolve_connection
    from hutch.queue.rabbitmq import RabbitMQQueue

    if resolver is None:
        resolver = partial(resolve_connection, settings.connection)

    return RabbitMQQueue(resolver, settings)


_BUILTIN_DRIVERS: dict[str, DriverCreator] = {
    "rabbitmq": _create_rabbitmq_queue,
}

_driver_registry: dict[str, DriverCreator] = dict(_BUILTIN_DRIVERS)


def register_driver(name: str, creator: DriverCreator) -> None:
    """Register (or replace) a driver creator."""
    if not name:
        raise InvalidConfigurationError("Driver name must not be empty")
    if not callable(creator):
        raise InvalidConfigurationError(f"Creator for driver [{name}] is not callable")

    _driver_registry[name] = creator
    logger.debug(f"Queue driver registered: {name}")


def unregister_driver(name: str) -> None:
    """Remove a custom driver; built-in drivers are restored instead."""
    if name in _BUILTIN_DRIVERS:
        _driver_registry[name] = _BUILTIN_DRIVERS[name]
    else:
        _driver_registry.pop(name, None)


def get_driver(name: str) -> DriverCreator:
    """Return the creator for a driver.

    Raises:
        QueueDriverNotFound: If no driver is registered under ``name``
    """
    try:
        return _driver_registry[name]
    except KeyError as e:
        raise QueueDriverNotFound(name) from e


def list_drivers() -> list[str]:
    return sorted(_driver_registry)


def create_queue(
    settings: "QueueSettings | None" = None,
    resolver: "ConnectionResolver | None" = None,
) -> t.Any:
    """Create a queue client for ``settings.driver``."""
    if settings is None:
        from hutch.config import load_settings

        settings = load_settings()

    return get_driver(settings.driver)(settings, resolver)
