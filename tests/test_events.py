"""
Tests for the event bus.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from qualitypilot.core.types import EventType, RunEvent
from qualitypilot.orchestration.events import EventBus


def make_event(event_type=EventType.LOG, run_id="run-1", **data):
    return RunEvent(type=event_type, run_id=run_id, data=data)


@pytest.fixture
def bus():
    return EventBus()


class TestSubscription:

    @pytest.mark.asyncio
    async def test_sync_handler_receives_all_events(self, bus):
        received = []
        bus.subscribe(received.append)

        await bus.emit(make_event(EventType.TEST_STARTED))
        await bus.emit(make_event(EventType.LOG, message="hi"))

        assert [e.type for e in received] == [EventType.TEST_STARTED, EventType.LOG]

    @pytest.mark.asyncio
    async def test_async_handler_awaited(self, bus):
        handler = AsyncMock()
        bus.subscribe(handler)

        event = make_event()
        await bus.emit(event)

        handler.assert_awaited_once_with(event)

    @pytest.mark.asyncio
    async def test_typed_subscription(self, bus):
        handler = Mock()
        bus.subscribe(handler, EventType.STEP_FAILED)

        await bus.emit(make_event(EventType.STEP_COMPLETED))
        await bus.emit(make_event(EventType.STEP_FAILED))

        assert handler.call_count == 1
        assert handler.call_args.args[0].type is EventType.STEP_FAILED

    @pytest.mark.asyncio
    async def test_unsubscribe(self, bus):
        handler = Mock()
        bus.subscribe(handler)
        bus.unsubscribe(handler)

        await bus.emit(make_event())

        handler.assert_not_called()

    def test_unsubscribe_unknown_handler(self, bus):
        bus.unsubscribe(Mock())

    @pytest.mark.asyncio
    async def test_failing_handler_isolated(self, bus):
        def broken(event):
            raise RuntimeError("observer crashed")

        healthy = Mock()
        bus.subscribe(broken)
        bus.subscribe(healthy)

        await bus.emit(make_event())

        healthy.assert_called_once()

    @pytest.mark.asyncio
    async def test_failing_async_handler_isolated(self, bus):
        bus.subscribe(AsyncMock(side_effect=RuntimeError("observer crashed")))

        await bus.emit(make_event())

        assert len(bus.history("run-1")) == 1


class TestHistory:

    @pytest.mark.asyncio
    async def test_history_per_run(self, bus):
        await bus.emit(make_event(run_id="a"))
        await bus.emit(make_event(EventType.STEP_STARTED, run_id="a"))
        await bus.emit(make_event(run_id="b"))

        assert len(bus.history("a")) == 2
        assert len(bus.history("b")) == 1
        assert bus.history("c") == []

    @pytest.mark.asyncio
    async def test_history_filtered_by_type(self, bus):
        await bus.emit(make_event(EventType.LOG))
        await bus.emit(make_event(EventType.STEP_STARTED))

        assert [e.type for e in bus.history("run-1", EventType.STEP_STARTED)] == [
            EventType.STEP_STARTED
        ]

    @pytest.mark.asyncio
    async def test_history_limit(self):
        bus = EventBus(history_limit=3)
        for i in range(5):
            await bus.emit(make_event(message=str(i)))

        assert [e.data["message"] for e in bus.history("run-1")] == ["2", "3", "4"]

    @pytest.mark.asyncio
    async def test_clear_history(self, bus):
        await bus.emit(make_event(run_id="a"))
        await bus.emit(make_event(run_id="b"))

        bus.clear_history("a")
        assert bus.history("a") == []
        assert len(bus.history("b")) == 1

        bus.clear_history()
        assert bus.history("b") == []

    @pytest.mark.asyncio
    async def test_finished_runs_evicted_oldest_first(self):
        bus = EventBus(finished_runs_retained=2)
        screenshot = "A" * 200_000
        for i in range(50):
            run_id = f"run-{i}"
            await bus.emit(make_event(EventType.SCREENSHOT, run_id=run_id, screenshot=screenshot))
            await bus.emit(make_event(EventType.TEST_COMPLETED, run_id=run_id))

        assert bus.get_statistics()["runs_tracked"] == 2
        assert bus.history("run-0") == []
        assert [e.type for e in bus.history("run-49")] == [
            EventType.SCREENSHOT,
            EventType.TEST_COMPLETED,
        ]
        assert len(bus.history("run-48")) == 2

    @pytest.mark.asyncio
    async def test_live_runs_never_evicted(self):
        bus = EventBus(finished_runs_retained=1)
        await bus.emit(make_event(EventType.STEP_STARTED, run_id="live"))
        for i in range(5):
            await bus.emit(make_event(EventType.TEST_FAILED, run_id=f"done-{i}"))
        await bus.emit(make_event(EventType.STEP_COMPLETED, run_id="live"))

        assert [e.type for e in bus.history("live")] == [
            EventType.STEP_STARTED,
            EventType.STEP_COMPLETED,
        ]
        assert bus.get_statistics()["runs_tracked"] == 2

    @pytest.mark.asyncio
    async def test_cleared_run_does_not_count_as_retained(self):
        bus = EventBus(finished_runs_retained=1)
        await bus.emit(make_event(EventType.TEST_COMPLETED, run_id="a"))
        bus.clear_history("a")
        await bus.emit(make_event(EventType.TEST_COMPLETED, run_id="b"))

        assert len(bus.history("b")) == 1

    @pytest.mark.asyncio
    async def test_statistics(self, bus):
        bus.subscribe(Mock())
        await bus.emit(make_event(EventType.LOG))
        await bus.emit(make_event(EventType.LOG))
        await bus.emit(make_event(EventType.ERROR))

        stats = bus.get_statistics()
        assert stats["total_events"] == 3
        assert stats["event_counts"] == {"log": 2, "error": 1}
        assert stats["runs_tracked"] == 1
        assert stats["active_subscriptions"]["*"] == 1


class TestWireFormat:

    def test_to_wire(self):
        event = make_event(EventType.SCREENSHOT, run_id="r", stepId="step_0")

        assert event.to_wire() == {
            "type": "screenshot",
            "runId": "r",
            "data": {"stepId": "step_0"},
        }
