"""Active-call registry."""
import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

from sqlalchemy import inspect

from outreach_voice.db.models import Call
from outreach_voice.services.call_session.models import CallSession, CallState, ConversationTurn

logger = logging.getLogger(__name__)


class CallRegistry(ABC):
    """Abstract base class for the store of in-flight calls."""

    @abstractmethod
    async def create(
        self,
        phone_number: str,
        campaign_id: Optional[str],
        contact_id: Optional[str] = None,
        call_id: Optional[str] = None,
    ) -> str:
        """Register a new call and return its id."""
        pass

    @abstractmethod
    async def get(self, call_id: str) -> Optional[CallSession]:
        """Get the live session for a call id."""
        pass

    @abstractmethod
    async def ensure_tracked(self, call_id: str, record: Call) -> CallSession:
        """Insert a session rebuilt from a persisted record unless one is already tracked."""
        pass

    @abstractmethod
    async def end(self, call_id: str) -> Optional[CallSession]:
        """Remove a session and return it for final persistence."""
        pass

    @abstractmethod
    def lock(self, call_id: str):
        """Async context manager serializing all work on one call id."""
        pass

    @abstractmethod
    async def active(self) -> List[CallSession]:
        """List live sessions."""
        pass


def _stored_turns(record: Call) -> List[ConversationTurn]:
    """Conversation turns already persisted for a call, oldest first."""
    if "messages" in inspect(record).unloaded:
        return []
    messages = sorted(record.messages, key=lambda m: (m.timestamp, m.id or 0))
    return [
        ConversationTurn(role=m.role, text=m.content, timestamp=m.timestamp, turn_id=m.turn_id)
        for m in messages
    ]


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class InMemoryCallRegistry(CallRegistry):
    """Process-local registry with one mutex per call id."""

    def __init__(self):
        self._sessions: Dict[str, CallSession] = {}
        self._locks: Dict[str, _LockEntry] = {}

    async def create(
        self,
        phone_number: str,
        campaign_id: Optional[str],
        contact_id: Optional[str] = None,
        call_id: Optional[str] = None,
    ) -> str:
        call_id = call_id or uuid.uuid4().hex
        if call_id in self._sessions:
            return call_id
        self._sessions[call_id] = CallSession(
            call_id=call_id,
            phone_number=phone_number,
            campaign_id=campaign_id,
            contact_id=contact_id,
        )
        logger.info(f"[REGISTRY] Tracking new call - CallId: {call_id}, Campaign: {campaign_id}")
        return call_id

    async def get(self, call_id: str) -> Optional[CallSession]:
        return self._sessions.get(call_id)

    async def ensure_tracked(self, call_id: str, record: Call) -> CallSession:
        session = self._sessions.get(call_id)
        if session:
            return session

        session = CallSession(
            call_id=call_id,
            phone_number=record.phone_number or "",
            campaign_id=record.campaign_id,
            contact_id=record.contact_id,
            record_id=record.id,
            provider_call_sid=record.provider_call_sid,
            state=CallState.ACTIVE,
            started_at=record.started_at,
        )
        if record.collected_data:
            session.collected.merge(record.collected_data)
        for turn in _stored_turns(record):
            session.add_turn(turn)
            if turn.turn_id and turn.turn_id.isdigit():
                session.turn_seq = max(session.turn_seq, int(turn.turn_id))
        self._sessions[call_id] = session
        logger.info(
            f"[REGISTRY] Recovered untracked call from storage - CallId: {call_id}, "
            f"Turns: {len(session.history)}, TurnSeq: {session.turn_seq}"
        )
        return session

    async def end(self, call_id: str) -> Optional[CallSession]:
        session = self._sessions.pop(call_id, None)
        if session:
            logger.info(f"[REGISTRY] Released call - CallId: {call_id}, Turns: {len(session.history)}")
        return session

    @asynccontextmanager
    async def lock(self, call_id: str) -> AsyncIterator[None]:
        entry = self._locks.get(call_id)
        if entry is None:
            entry = self._locks[call_id] = _LockEntry()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and call_id not in self._sessions:
                self._locks.pop(call_id, None)

    async def active(self) -> List[CallSession]:
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)
