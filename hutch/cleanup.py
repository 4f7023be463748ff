"""Basic resource cleanup patterns for hutch clients.

Queue clients own blocking connections that must be closed when the client
goes away. This mixin keeps a registry of such resources and closes them in
registration order.
"""

import typing as t

from hutch.logger import get_logger

logger = get_logger(__name__)


class CleanupMixin:
    """Simple mixin for resource cleanup."""

    cleanup_methods: tuple[str, ...] = ("close", "disconnect", "shutdown")

    def __init__(self) -> None:
        self._resources: list[t.Any] = []

    def register_resource(self, resource: t.Any) -> None:
        """Register a resource for cleanup."""
        if resource not in self._resources:
            self._resources.append(resource)

    def unregister_resource(self, resource: t.Any) -> None:
        if resource in self._resources:
            self._resources.remove(resource)

    def cleanup_resource(self, resource: t.Any) -> bool:
        """Clean up a single resource using the first close-like method it has.

        Returns:
            True if a cleanup method ran without raising
        """
        if resource is None:
            return False

        for method_name in self.cleanup_methods:
            method = getattr(resource, method_name, None)
            if not callable(method):
                continue
            try:
                method()
            except Exception as e:
                logger.debug(f"Failed to cleanup using {method_name}(): {e}")
                continue
            logger.debug(f"Cleaned up {type(resource).__name__} using {method_name}()")
            return True
        return False

    def cleanup(self) -> None:
        """Clean up all registered resources.

        Resources stay registered, so a client that reconnects after
        cleanup is cleaned up again on the next call.
        """
        failed = [
            type(resource).__name__
            for resource in self._resources.copy()
            if not self.cleanup_resource(resource)
        ]
        if failed:
            logger.warning(f"Resource cleanup failed for: {', '.join(failed)}")

    def __enter__(self) -> t.Self:
        return self

    def __exit__(self, exc_type: t.Any, exc_val: t.Any, exc_tb: t.Any) -> None:
        """Context manager exit with cleanup."""
        self.cleanup()
