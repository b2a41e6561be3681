"""
Test the node event bus: fan-out to subscribers and since_id polling.
"""
import pytest

from gensyn_playground.core.node.events import EventBus, EventType


class TestEventBus:

    def test_ids_strictly_increase(self):
        bus = EventBus()
        ids = [bus.emit(EventType.LOG, text=str(i)).id for i in range(5)]
        assert ids == [1, 2, 3, 4, 5]
        assert bus.latest_id == 5

    def test_subscribers_receive_events_in_order(self):
        bus = EventBus()
        received = []
        bus.subscribe(received.append)

        bus.emit(EventType.JOB_STARTED, name="Fine-tune Llama-7B", total_steps=12)
        bus.emit(EventType.PROGRESS, percent=0.0)

        assert [e.type for e in received] == [EventType.JOB_STARTED, EventType.PROGRESS]
        assert received[0].payload["name"] == "Fine-tune Llama-7B"

    def test_unsubscribe(self):
        bus = EventBus()
        received = []
        unsubscribe = bus.subscribe(received.append)

        bus.emit(EventType.LOG, text="first")
        unsubscribe()
        unsubscribe()
        bus.emit(EventType.LOG, text="second")

        assert [e.payload["text"] for e in received] == ["first"]

    def test_failing_subscriber_does_not_block_others(self):
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("dashboard went away")

        bus.subscribe(broken)
        bus.subscribe(received.append)

        event = bus.emit(EventType.CUE, frequency=600)

        assert received == [event]
        assert len(bus) == 1

    def test_since_filters_and_limits(self):
        bus = EventBus()
        for i in range(10):
            bus.emit(EventType.LOG, text=f"line {i}")

        assert [e.id for e in bus.since(since_id=7)] == [8, 9, 10]
        assert [e.id for e in bus.since(since_id=0, limit=3)] == [8, 9, 10]
        assert len(bus.since()) == 10
        assert bus.since(since_id=10) == []

    def test_buffer_is_bounded(self):
        bus = EventBus(buffer_size=3)
        for i in range(5):
            bus.emit(EventType.PROGRESS, percent=float(i))

        assert len(bus) == 3
        assert [e.id for e in bus.since()] == [3, 4, 5]
        assert bus.latest_id == 5

    def test_to_dict(self):
        bus = EventBus()
        event = bus.emit(EventType.EARNINGS_CHANGED, total=3.46)
        data = event.to_dict()

        assert data["id"] == 1
        assert data["type"] == "earnings_changed"
        assert data["payload"] == {"total": 3.46}
        assert data["timestamp"] == pytest.approx(event.timestamp)

    def test_empty_bus(self):
        bus = EventBus()
        assert bus.latest_id == 0
        assert len(bus) == 0
        assert bus.since(since_id=5) == []
