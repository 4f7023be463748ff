"""End-to-end scenarios for the RabbitMQQueue client."""

import pytest

from hutch.queue._base import EntityKind, InvalidConfigurationError
from hutch.queue.rabbitmq import RabbitMQQueue


@pytest.mark.unit
class TestScenarios:
    """Test the worker-facing flows against the fake broker."""

    def test_push_pop_delete(self, queue):
        """Test push, pop and delete leave the queue empty."""
        queue.declare_queue("jobs", durable=True)
        queue.push(b"A", "jobs")

        job = queue.pop("jobs")
        assert job.get_raw_body() == b"A"
        assert job.attempts() == 1

        job.delete()
        assert queue.pop("jobs") is None

    def test_push_pop_release(self, queue):
        """Test a released job comes back with attempts incremented."""
        queue.push(b"B", "jobs")
        job = queue.pop("jobs")

        job.release(delay=0)

        again = queue.pop("jobs")
        assert again.get_raw_body() == b"B"
        assert again.attempts() == 2

    def test_delete_never_declared_queue(self, queue, broker):
        """Test deleting an unknown queue never calls the delete RPC."""
        queue.delete_queue("never-declared")

        assert broker.count("queue_delete") == 0

    def test_exists(self, queue, broker):
        """Test exists is False before and True after a declaration."""
        assert queue.exists(EntityKind.EXCHANGE, "events") is False

        queue.declare_exchange("events", "topic")
        calls = len(broker.calls)

        assert queue.exists("exchange", "events") is True
        assert len(broker.calls) == calls

    def test_bulk_then_pop_in_order(self, queue):
        """Test bulk payloads are consumed in submission order."""
        queue.bulk([b"1", b"2", b"3"], "jobs")

        bodies = []
        while (job := queue.pop("jobs")) is not None:
            bodies.append(job.body)
            queue.ack(job)

        assert bodies == [b"1", b"2", b"3"]

    def test_reject_through_client(self, queue):
        """Test the client-level reject delegates to the job."""
        queue.push(b"A", "jobs")
        job = queue.pop("jobs")

        queue.reject(job, requeue=True)

        assert job.is_rejected()
        assert queue.pop("jobs").body == b"A"

    def test_later(self, queue, broker):
        """Test later publishes into the holding queue."""
        queue.later(3, b"A", "jobs")

        assert queue.pop("jobs") is None
        assert queue.size("jobs.delay.3000") == 1

    def test_clear_and_size(self, queue):
        """Test clear purges and reports the number of messages."""
        queue.push(b"A", "jobs")
        queue.push(b"B", "jobs")

        assert queue.size("jobs") == 2
        assert queue.clear("jobs") == 2
        assert queue.size("jobs") == 0

    def test_clear_missing_queue(self, queue):
        """Test clearing an unknown queue is 0, not an error."""
        assert queue.clear("missing") == 0
        assert queue.size("missing") == 0

    def test_bind_and_route(self, queue):
        """Test declared topology routes published messages."""
        queue.declare_exchange("events", "direct")
        queue.declare_queue("created")
        queue.bind_queue("created", "events", "user.created")

        queue.push_raw(b"A", "exchange:events", {"routing_key": "user.created"})

        assert queue.pop("created").body == b"A"

    def test_delete_exchange(self, queue, broker):
        """Test delete_exchange removes a declared exchange."""
        queue.declare_exchange("events")

        assert queue.delete_exchange("events") is True
        assert "events" not in broker.exchanges
        assert queue.exists("exchange", "events") is False


@pytest.mark.unit
class TestLifecycle:
    """Test construction and close."""

    def test_missing_resolver(self, settings):
        """Test a missing connection resolver fails fast."""
        with pytest.raises(InvalidConfigurationError):
            RabbitMQQueue(None, settings)

    def test_get_queue(self, queue):
        """Test the default queue fallback."""
        assert queue.get_queue() == "default"
        assert queue.get_queue("jobs") == "jobs"

    def test_close_requeues_active_job(self, queue, broker):
        """Test close puts an unfinished current job back on the queue."""
        queue.push(b"A", "jobs")
        job = queue.pop("jobs")

        queue.close()

        assert job.is_rejected()
        assert queue.current_job is None
        assert [m.body for m in broker.messages("jobs")] == [b"A"]
        assert broker.count("basic_reject", requeue=True) == 1

    def test_close_leaves_finished_job(self, queue, broker):
        """Test close does not touch a job that already finished."""
        queue.push(b"A", "jobs")
        queue.pop("jobs").delete()

        queue.close()

        assert broker.count("basic_reject") == 0

    def test_close_is_idempotent(self, queue, broker):
        """Test close twice closes the connection once and clears the cache."""
        queue.declare_queue("jobs")

        queue.close()
        queue.close()

        assert broker.count("connection_close") == 1
        assert len(queue.cache) == 0
        assert not queue.manager.is_connected

    def test_close_survives_lost_connection(self, queue, broker):
        """Test close still completes when the requeue fails."""
        queue.push(b"A", "jobs")
        queue.pop("jobs")
        broker.drop_connections()

        queue.close()

        assert not queue.manager.is_connected

    def test_reuse_after_close(self, queue, broker):
        """Test a closed client reconnects and redeclares on next use."""
        queue.push(b"A", "jobs")
        queue.close()

        queue.push(b"B", "jobs")

        assert len(broker.connections) == 2
        assert [m.body for m in broker.messages("jobs")] == [b"A", b"B"]

    def test_context_manager(self, broker, settings):
        """Test the client closes on exit."""
        with RabbitMQQueue(broker.connect, settings) as client:
            client.push(b"A", "jobs")

        assert not client.manager.is_connected
        assert broker.count("connection_close") == 1
