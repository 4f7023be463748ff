"""Named queue connections.

A process usually talks to one broker, but may hold several configured
queue clients (different vhosts, default queues or exchanges). The manager
creates each one on first use and keeps it until it is disconnected.
"""

import typing as t

from hutch.cleanup import CleanupMixin
from hutch.config import QueueSettings
from hutch.discovery import DriverCreator, get_driver
from hutch.logger import get_logger
from hutch.queue._base import InvalidConfigurationError

logger = get_logger(__name__)


class QueueManager(CleanupMixin):
    """Registry of named queue clients.

    Args:
        connections: Settings per connection name
        default: Name used when ``connection()`` is called without one;
            the first configured name when omitted
    """

    def __init__(
        self,
        connections: dict[str, QueueSettings],
        default: str | None = None,
    ) -> None:
        super().__init__()
        if not connections:
            msg = "At least one queue connection must be configured"
            raise InvalidConfigurationError(msg)

        self._settings = dict(connections)
        self._default = default or next(iter(self._settings))
        if self._default not in self._settings:
            msg = f"Default queue connection [{self._default}] is not configured"
            raise InvalidConfigurationError(msg)

        self._connections: dict[str, t.Any] = {}
        self._creators: dict[str, DriverCreator] = {}

    @property
    def default(self) -> str:
        return self._default

    def connection_names(self) -> list[str]:
        return list(self._settings)

    def connection(self, name: str | None = None) -> t.Any:
        """Return the queue client for ``name``, creating it on first use.

        Raises:
            InvalidConfigurationError: If ``name`` is not configured
        """
        name = name or self._default
        if name not in self._connections:
            self._connections[name] = self._resolve(name)
            self.register_resource(self._connections[name])
        return self._connections[name]

    def _resolve(self, name: str) -> t.Any:
        settings = self._settings.get(name)
        if settings is None:
            msg = f"Queue connection [{name}] is not configured"
            raise InvalidConfigurationError(msg)

        creator = self._creators.get(settings.driver) or get_driver(settings.driver)
        logger.debug(f"Creating queue connection {name} ({settings.driver})")
        return creator(settings, None)

    def extend(self, driver: str, creator: DriverCreator) -> None:
        """Use ``creator`` for ``driver`` in connections this manager creates.

        Overrides the registered creator for this manager only; the driver
        name must still be registered for settings naming it to validate.
        """
        if not callable(creator):
            msg = f"Creator for driver [{driver}] is not callable"
            raise InvalidConfigurationError(msg)
        self._creators[driver] = creator

    def disconnect(self, name: str | None = None) -> None:
        """Close and forget one connection; the next lookup creates it again."""
        name = name or self._default
        client = self._connections.pop(name, None)
        if client is None:
            return
        self.unregister_resource(client)
        self.cleanup_resource(client)
        logger.debug(f"Queue connection {name} disconnected")

    def close(self) -> None:
        """Close every connection created so far."""
        self.cleanup()
        for client in self._connections.values():
            self.unregister_resource(client)
        self._connections.clear()

    def __exit__(self, exc_type: t.Any, exc_val: t.Any, exc_tb: t.Any) -> None:
        self.close()
