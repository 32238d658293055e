"""Unit tests for the live event broadcaster."""
import asyncio
import pytest

from conftest import RecordingObserver
from outreach_voice.services.events.broadcaster import EventBroadcaster


class SlowObserver:
    async def send_json(self, data):
        await asyncio.sleep(5)


class BrokenObserver:
    async def send_json(self, data):
        raise RuntimeError("socket closed")


class TestEventBroadcaster:
    """Test non-blocking fan-out."""

    @pytest.mark.asyncio
    async def test_event_envelope(self):
        broadcaster = EventBroadcaster(send_timeout=0.5)
        observer = RecordingObserver()
        broadcaster.register(observer)

        broadcaster.publish("call-1", "speech-recognized", {"text": "Hello"})
        await broadcaster.drain()

        assert len(observer.events) == 1
        event = observer.events[0]
        assert event["type"] == "speech-recognized"
        assert event["callId"] == "call-1"
        assert event["data"] == {"text": "Hello"}
        assert "timestamp" in event

    @pytest.mark.asyncio
    async def test_publish_does_not_wait_for_slow_observer(self):
        broadcaster = EventBroadcaster(send_timeout=0.05)
        fast = RecordingObserver()
        broadcaster.register(SlowObserver())
        broadcaster.register(fast)

        loop = asyncio.get_running_loop()
        started = loop.time()
        broadcaster.publish("call-1", "error", {"kind": "SynthesisFailure"})
        assert loop.time() - started < 0.05

        await broadcaster.drain()
        assert fast.types() == ["error"]

    @pytest.mark.asyncio
    async def test_failed_observers_are_dropped(self):
        broadcaster = EventBroadcaster(send_timeout=0.05)
        broadcaster.register(BrokenObserver())
        broadcaster.register(SlowObserver())
        healthy = RecordingObserver()
        broadcaster.register(healthy)

        broadcaster.publish("call-1", "call-started")
        await broadcaster.drain()

        assert broadcaster.observer_count == 1
        broadcaster.publish("call-1", "call-ended")
        await broadcaster.drain()
        assert healthy.types() == ["call-started", "call-ended"]

    @pytest.mark.asyncio
    async def test_publish_without_observers(self):
        broadcaster = EventBroadcaster()
        broadcaster.publish("call-1", "call-started")
        await broadcaster.drain()

    def test_unregister(self):
        broadcaster = EventBroadcaster()
        observer = RecordingObserver()
        broadcaster.register(observer)
        broadcaster.unregister(observer)
        broadcaster.unregister(observer)
        assert broadcaster.observer_count == 0

    @pytest.mark.asyncio
    async def test_observer_receives_events_in_publish_order(self):
        """A send that takes longer never lets a later event overtake it."""
        broadcaster = EventBroadcaster(send_timeout=0.5)
        observer = UnevenObserver()
        broadcaster.register(observer)

        broadcaster.publish("call-1", "speech-recognized")
        broadcaster.publish("call-1", "generation-requested")
        broadcaster.publish("call-1", "generation-responded")
        broadcaster.publish("call-1", "synthesis-completed")
        await broadcaster.drain()

        assert observer.types() == [
            "speech-recognized",
            "generation-requested",
            "generation-responded",
            "synthesis-completed",
        ]
        await broadcaster.close()

    @pytest.mark.asyncio
    async def test_drain_returns_after_observer_dropped_with_backlog(self):
        broadcaster = EventBroadcaster(send_timeout=0.05)
        broadcaster.register(SlowObserver())

        for _ in range(5):
            broadcaster.publish("call-1", "error")
        await asyncio.wait_for(broadcaster.drain(), 1.0)

        assert broadcaster.observer_count == 0
        await broadcaster.close()


class UnevenObserver(RecordingObserver):
    """Slow to deliver recognition events, instant for everything else."""

    async def send_json(self, data):
        await asyncio.sleep(0.05 if data["type"] == "speech-recognized" else 0)
        self.events.append(data)
