"""Unit tests for the active-call registry and session state."""
import asyncio
import pytest
from datetime import datetime

from outreach_voice.db.models import Call, CallMessage
from outreach_voice.services.call_session.models import (
    CallSession,
    CallState,
    ConversationTurn,
    can_transition,
)
from outreach_voice.services.call_session.registry import InMemoryCallRegistry


class TestRegistry:
    """Test the in-memory registry."""

    @pytest.mark.asyncio
    async def test_create_and_get_returns_same_session(self):
        """Test that lookups return the same live session object."""
        registry = InMemoryCallRegistry()
        call_id = await registry.create("+919876543210", "camp-1", "contact-1")

        first = await registry.get(call_id)
        second = await registry.get(call_id)

        assert first is second
        assert first.state == CallState.CREATED
        assert first.phone_number == "+919876543210"
        assert first.contact_id == "contact-1"

    @pytest.mark.asyncio
    async def test_create_with_existing_id_keeps_session(self):
        """Test that registering an id twice never replaces the live session."""
        registry = InMemoryCallRegistry()
        await registry.create("+911111111111", "camp-1", call_id="CA123")
        session = await registry.get("CA123")
        session.add_turn(ConversationTurn(role="agent", text="Hello"))

        await registry.create("+912222222222", "camp-2", call_id="CA123")

        assert await registry.get("CA123") is session
        assert len(session.history) == 1
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_ensure_tracked_rebuilds_from_record(self):
        """Test recovering a session from a persisted call row."""
        registry = InMemoryCallRegistry()
        record = Call(
            id=7,
            call_id="call-7",
            phone_number="+919999999999",
            campaign_id="camp-1",
            started_at=datetime.utcnow(),
            collected_data={"email": "owner@lab.com"},
        )

        session = await registry.ensure_tracked("call-7", record)
        again = await registry.ensure_tracked("call-7", record)

        assert session is again
        assert session.state == CallState.ACTIVE
        assert session.record_id == 7
        assert session.collected.email == "owner@lab.com"

    @pytest.mark.asyncio
    async def test_ensure_tracked_restores_stored_turns(self):
        """Test that a recovered session continues the stored conversation."""
        registry = InMemoryCallRegistry()
        started = datetime(2026, 1, 5, 10, 0, 0)
        record = Call(
            id=8,
            call_id="call-8",
            phone_number="+919999999999",
            campaign_id="camp-1",
            started_at=started,
            messages=[
                CallMessage(id=3, role="agent", content="Could you share your email?", turn_id="1",
                            timestamp=started.replace(second=9)),
                CallMessage(id=1, role="agent", content="Hi, this is Anvika", turn_id="answer",
                            timestamp=started.replace(second=1)),
                CallMessage(id=2, role="customer", content="Hello", turn_id="1",
                            timestamp=started.replace(second=9)),
            ],
        )

        session = await registry.ensure_tracked("call-8", record)

        assert [t.text for t in session.history] == [
            "Hi, this is Anvika",
            "Hello",
            "Could you share your email?",
        ]
        assert session.history[1].role == "customer"
        assert session.turn_seq == 1
        assert session.next_turn_id() == "2"

    @pytest.mark.asyncio
    async def test_end_removes_session(self):
        """Test that ending a call removes and returns it."""
        registry = InMemoryCallRegistry()
        call_id = await registry.create("+911234567890", "camp-1")

        ended = await registry.end(call_id)

        assert ended is not None
        assert ended.call_id == call_id
        assert await registry.get(call_id) is None
        assert await registry.end(call_id) is None

    @pytest.mark.asyncio
    async def test_lock_serializes_same_call(self):
        """Test that work on one call id never interleaves."""
        registry = InMemoryCallRegistry()
        call_id = await registry.create("+911234567890", "camp-1")
        order = []

        async def worker(name):
            async with registry.lock(call_id):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["a-start", "a-end", "b-start", "b-end"]

    @pytest.mark.asyncio
    async def test_lock_does_not_block_other_calls(self):
        """Test that different calls never contend."""
        registry = InMemoryCallRegistry()

        async with registry.lock("call-a"):
            async def acquire_other():
                async with registry.lock("call-b"):
                    return True

            assert await asyncio.wait_for(acquire_other(), timeout=0.5)

    @pytest.mark.asyncio
    async def test_lock_released_after_call_ends(self):
        """Test that per-call locks do not outlive their call."""
        registry = InMemoryCallRegistry()
        call_id = await registry.create("+911234567890", "camp-1")

        async with registry.lock(call_id):
            await registry.end(call_id)

        assert call_id not in registry._locks

    @pytest.mark.asyncio
    async def test_active_lists_live_sessions(self):
        registry = InMemoryCallRegistry()
        first = await registry.create("+911111111111", "camp-1")
        await registry.create("+912222222222", "camp-1")
        await registry.end(first)

        active = await registry.active()

        assert len(active) == 1
        assert active[0].phone_number == "+912222222222"


class TestCallState:
    """Test the call lifecycle rules."""

    def test_forward_transitions_allowed(self):
        assert can_transition(CallState.CREATED, CallState.RINGING)
        assert can_transition(CallState.RINGING, CallState.ACTIVE)
        assert can_transition(CallState.ACTIVE, CallState.GATHERING)
        assert can_transition(CallState.GATHERING, CallState.ENDING)

    def test_gathering_and_processing_alternate(self):
        assert can_transition(CallState.GATHERING, CallState.PROCESSING)
        assert can_transition(CallState.PROCESSING, CallState.GATHERING)

    def test_backward_transitions_refused(self):
        assert not can_transition(CallState.ACTIVE, CallState.RINGING)
        assert not can_transition(CallState.ENDING, CallState.GATHERING)

    def test_terminal_states_are_final(self):
        assert can_transition(CallState.CREATED, CallState.FAILED)
        assert not can_transition(CallState.COMPLETED, CallState.ACTIVE)
        assert not can_transition(CallState.BUSY, CallState.COMPLETED)

    def test_refused_transition_leaves_state(self):
        """Test that an invalid transition is refused rather than applied."""
        session = CallSession(call_id="c1", state=CallState.GATHERING)

        assert session.transition(CallState.RINGING) is False
        assert session.state == CallState.GATHERING

    def test_response_cache_is_bounded(self):
        session = CallSession(call_id="c1")
        for turn in range(CallSession.RESPONSE_CACHE_SIZE + 3):
            session.remember_response(str(turn), f"<Response>{turn}</Response>")

        assert session.cached_response("0") is None
        last = str(CallSession.RESPONSE_CACHE_SIZE + 2)
        assert session.cached_response(last) == f"<Response>{last}</Response>"

    def test_history_is_append_only(self):
        session = CallSession(call_id="c1")
        session.add_turn(ConversationTurn(role="agent", text="Hi"))
        session.add_turn(ConversationTurn(role="customer", text="Hello"))

        assert [t.text for t in session.history] == ["Hi", "Hello"]
        with pytest.raises(Exception):
            session.history[0].text = "changed"
