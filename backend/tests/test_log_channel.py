"""
Tests for the log broadcaster.
"""
import asyncio

import pytest

from shipyard.core.log_channel import LogBroadcaster, LogEvent, LogType


class TestPublish:
    """Fan-out to subscribers."""

    @pytest.mark.asyncio
    async def test_subscriber_receives_events_in_order(self, broadcaster):
        subscription = broadcaster.subscribe(1)

        broadcaster.publish(1, LogType.STDOUT, "first")
        broadcaster.publish(1, "stderr", "second")

        first = await subscription.get()
        second = await subscription.get()
        assert (first.log_type, first.message) == ("stdout", "first")
        assert (second.log_type, second.message) == ("stderr", "second")

    @pytest.mark.asyncio
    async def test_events_are_scoped_to_project(self, broadcaster):
        mine = broadcaster.subscribe(1)
        other = broadcaster.subscribe(2)

        broadcaster.publish(1, LogType.SYSTEM, "hello")

        assert mine.pending() == 1
        assert other.pending() == 0

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest(self):
        broadcaster = LogBroadcaster(queue_size=2)
        subscription = broadcaster.subscribe(1)

        for i in range(5):
            broadcaster.publish(1, LogType.STDOUT, f"line {i}")

        assert subscription.dropped == 3
        assert [subscription.get_nowait().message for _ in range(2)] == ["line 3", "line 4"]

    @pytest.mark.asyncio
    async def test_closed_subscription_stops_receiving(self, broadcaster):
        subscription = broadcaster.subscribe(1)
        subscription.close()

        broadcaster.publish(1, LogType.STDOUT, "ignored")

        assert subscription.pending() == 0
        assert broadcaster.subscriber_count(1) == 0

    @pytest.mark.asyncio
    async def test_context_manager_unsubscribes(self, broadcaster):
        async with broadcaster.subscribe(3) as subscription:
            assert broadcaster.subscriber_count(3) == 1
            broadcaster.publish(3, LogType.BUILD, "compiling")
            assert (await subscription.get()).message == "compiling"

        assert broadcaster.subscriber_count(3) == 0

    def test_publish_without_subscribers_or_loop(self):
        broadcaster = LogBroadcaster()

        event = broadcaster.publish(9, LogType.ERROR, "boom")

        assert event.project_id == 9
        assert event.log_type == "error"

    def test_event_payload(self):
        event = LogEvent(project_id=4, log_type="build-error", message="npm ERR!")

        payload = event.to_dict()

        assert payload["projectId"] == 4
        assert payload["logType"] == "build-error"
        assert payload["message"] == "npm ERR!"
        assert "timestamp" in payload


class TestPersistence:
    """Background writes to the sink."""

    @pytest.mark.asyncio
    async def test_events_reach_sink_after_flush(self):
        persisted = []

        async def sink(event):
            persisted.append((event.project_id, event.log_type, event.message))

        broadcaster = LogBroadcaster(sink=sink)
        broadcaster.publish(1, LogType.STDOUT, "a")
        broadcaster.publish(1, LogType.SYSTEM, "b")

        await broadcaster.flush()

        assert persisted == [(1, "stdout", "a"), (1, "system", "b")]

    @pytest.mark.asyncio
    async def test_slow_sink_does_not_block_publish(self):
        release = asyncio.Event()

        async def sink(event):
            await release.wait()

        broadcaster = LogBroadcaster(sink=sink)
        subscription = broadcaster.subscribe(1)

        for i in range(50):
            broadcaster.publish(1, LogType.STDOUT, str(i))

        assert subscription.pending() == 50
        release.set()
        await broadcaster.flush()

    @pytest.mark.asyncio
    async def test_sink_errors_are_logged_not_raised(self):
        calls = []

        async def sink(event):
            calls.append(event.message)
            raise RuntimeError("database down")

        broadcaster = LogBroadcaster(sink=sink)
        broadcaster.publish(1, LogType.STDOUT, "x")
        broadcaster.publish(1, LogType.STDOUT, "y")

        await broadcaster.flush()

        assert calls == ["x", "y"]

    @pytest.mark.asyncio
    async def test_memory_store_sink(self, memory_store):
        async def sink(event):
            await memory_store.append_log(event.project_id, event.log_type, event.message)

        broadcaster = LogBroadcaster(sink=sink)
        broadcaster.publish(2, LogType.BUILD, "done")
        await broadcaster.flush()

        entries = await memory_store.list_logs(2)
        assert [(e.type, e.message) for e in entries] == [("build", "done")]
