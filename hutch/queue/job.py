"""A fetched message and its acknowledge/reject/release state machine."""

import typing as t

from ._base import ATTEMPTS_HEADER, JobMessage, JobState, JobStateError
from .delay import Delay

if t.TYPE_CHECKING:
    from .channel import BrokerChannel
    from .publisher import Publisher


class RabbitMQJob:
    """One delivery fetched by ``pop``.

    The job is bound to the channel that fetched it: acknowledgements must
    travel on that channel, since delivery tags are channel scoped. Exactly
    one of :meth:`delete`, :meth:`reject` or :meth:`release` may be called.
    """

    def __init__(
        self,
        publisher: "Publisher",
        channel: "BrokerChannel",
        message: JobMessage,
        queue: str,
    ) -> None:
        self.publisher = publisher
        self.channel = channel
        self.message = message
        self.queue = queue
        self._state = JobState.ACTIVE

    def __repr__(self) -> str:
        return (
            f"<RabbitMQJob id={self.job_id} queue={self.queue} "
            f"state={self._state.value}>"
        )

    @property
    def job_id(self) -> str | None:
        return self.message.correlation_id

    @property
    def body(self) -> bytes:
        return self.message.body

    def get_raw_body(self) -> bytes:
        return self.message.body

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def delivery_tag(self) -> int:
        return t.cast(int, self.message.delivery_tag)

    def attempts(self) -> int:
        """Delivery attempt number, 1 for a job that was never released."""
        value = self.message.headers.get(ATTEMPTS_HEADER)
        if value is None:
            return 1
        if isinstance(value, bytes):
            value = value.decode()
        try:
            return int(value)
        except (TypeError, ValueError):
            return 1

    # ========================================================================
    # State
    # ========================================================================

    def is_active(self) -> bool:
        return self._state is JobState.ACTIVE

    def is_deleted(self) -> bool:
        return self._state is JobState.ACKNOWLEDGED

    def is_released(self) -> bool:
        return self._state is JobState.RELEASED

    def is_rejected(self) -> bool:
        return self._state is JobState.REJECTED

    def is_deleted_or_released(self) -> bool:
        return self.is_deleted() or self.is_released()

    def _ensure_active(self, operation: str) -> None:
        if not self.is_active():
            raise JobStateError(
                f"Cannot {operation} job {self.job_id}: already {self._state.value}"
            )

    # ========================================================================
    # Terminal operations
    # ========================================================================

    def delete(self) -> None:
        """Acknowledge the delivery; the broker forgets the message."""
        self._ensure_active("delete")
        self.channel.ack(self.delivery_tag)
        self._state = JobState.ACKNOWLEDGED

    def reject(self, requeue: bool = False) -> None:
        """Reject the delivery, optionally putting it back on the queue as is."""
        self._ensure_active("reject")
        self.channel.reject(self.delivery_tag, requeue=requeue)
        self._state = JobState.REJECTED

    def release(self, delay: Delay = 0) -> str:
        """Put a copy back on the queue with the attempt counter incremented.

        The copy is published first and the original acknowledged second, so
        a failure in between duplicates the job rather than losing it.

        Returns:
            The correlation id of the republished copy (unchanged)
        """
        self._ensure_active("release")

        headers = {
            key: value
            for key, value in self.message.headers.items()
            if key != ATTEMPTS_HEADER
        }
        correlation_id = self.publisher.later_raw(
            delay,
            self.get_raw_body(),
            self.queue,
            attempts=self.attempts() + 1,
            options={
                "correlation_id": self.job_id,
                "headers": headers,
                "priority": self.message.priority,
            },
        )

        self.channel.ack(self.delivery_tag)
        self._state = JobState.RELEASED
        return correlation_id
