"""Call session models."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class CallState(str, Enum):
    """Lifecycle states of a call."""

    CREATED = "created"
    RINGING = "ringing"
    ACTIVE = "active"
    GATHERING = "gathering"  # Waiting for the caller's next input
    PROCESSING = "processing"  # Running recognition, generation and synthesis
    ENDING = "ending"  # Hangup issued, waiting for the terminal status webhook
    COMPLETED = "completed"
    FAILED = "failed"
    NO_ANSWER = "no_answer"
    BUSY = "busy"

    def __str__(self) -> str:
        return self.value


TERMINAL_STATES = frozenset(
    {CallState.COMPLETED, CallState.FAILED, CallState.NO_ANSWER, CallState.BUSY}
)

_ORDER = {
    CallState.CREATED: 0,
    CallState.RINGING: 1,
    CallState.ACTIVE: 2,
    CallState.GATHERING: 3,
    CallState.PROCESSING: 3,
    CallState.ENDING: 4,
}


def can_transition(current: CallState, new: CallState) -> bool:
    """Transitions only move forward; GATHERING and PROCESSING may alternate."""
    if current in TERMINAL_STATES:
        return False
    if new in TERMINAL_STATES:
        return True
    if {current, new} == {CallState.GATHERING, CallState.PROCESSING}:
        return True
    return _ORDER[new] > _ORDER[current]


class ConversationTurn(BaseModel):
    """One utterance in the conversation. Immutable once appended."""

    model_config = ConfigDict(frozen=True)

    role: str  # customer | agent
    text: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    audio_url: Optional[str] = None
    extracted: Optional[Dict[str, Any]] = None
    turn_id: Optional[str] = None


PLACEHOLDER_VALUES = {"", "none", "null", "n/a", "na", "unknown", "value if mentioned"}

FIELD_ALIASES = {
    "lab_name": "company",
    "organization": "company",
    "organization_name": "company",
    "company_name": "company",
    "whatsapp": "whatsapp_number",
    "phone": "whatsapp_number",
    "phone_number": "whatsapp_number",
    "name": "contact_person",
    "email_id": "email",
    "interest": "customer_interest",
    "interest_level": "customer_interest",
}


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip().lower() in PLACEHOLDER_VALUES
    if isinstance(value, (list, dict, tuple, set)):
        return len(value) == 0
    return False


class CollectedContactData(BaseModel):
    """Structured prospect data accumulated across turns."""

    model_config = ConfigDict(extra="allow")

    contact_person: Optional[str] = None
    whatsapp_number: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None
    customer_interest: Optional[str] = None
    contact_complete: Optional[str] = None
    notes: Optional[str] = None

    def merge(self, incoming: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Merge newly extracted fields into this record.

        Non-empty incoming values overwrite; empty, absent or placeholder
        values never erase what was already collected.

        Returns:
            The fields that actually changed
        """
        changed: Dict[str, Any] = {}
        for raw_key, value in (incoming or {}).items():
            if not isinstance(raw_key, str) or _is_empty(value):
                continue
            key = FIELD_ALIASES.get(raw_key.strip().lower(), raw_key.strip())
            if isinstance(value, str):
                value = value.strip()
            if getattr(self, key, None) != value:
                setattr(self, key, value)
                changed[key] = value
        return changed

    def as_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class CallSession:
    """Mutable state of one in-flight call."""

    # Cached markup for recently answered turns, so redelivered webhooks are idempotent
    RESPONSE_CACHE_SIZE = 8

    def __init__(
        self,
        call_id: str,
        phone_number: str = "",
        campaign_id: Optional[str] = None,
        contact_id: Optional[str] = None,
        record_id: Optional[int] = None,
        provider_call_sid: Optional[str] = None,
        state: CallState = CallState.CREATED,
        started_at: Optional[datetime] = None,
    ):
        self.call_id = call_id
        self.phone_number = phone_number
        self.campaign_id = campaign_id
        self.contact_id = contact_id
        self.record_id = record_id  # Database ID
        self.provider_call_sid = provider_call_sid
        self.state = state
        self.started_at = started_at or datetime.utcnow()
        self.ended_at: Optional[datetime] = None
        self.history: List[ConversationTurn] = []
        self.collected = CollectedContactData()
        self.language: str = "english"
        self.last_audio_url: Optional[str] = None
        self.end_reason: Optional[str] = None
        self.missed_turns = 0
        self.turn_seq = 0
        self.hangup_requested = False
        self._responses: Dict[str, str] = {}

    @property
    def is_live(self) -> bool:
        """Whether the pipeline may still produce side effects for this call."""
        return not self.hangup_requested and self.state not in TERMINAL_STATES and self.state != CallState.ENDING

    def transition(self, new_state: CallState) -> bool:
        """Move to a new state if the lifecycle allows it."""
        if new_state == self.state:
            return True
        if not can_transition(self.state, new_state):
            logger.warning(
                f"[CALL SESSION] Refused transition {self.state.value} -> {new_state.value} - CallId: {self.call_id}"
            )
            return False
        logger.debug(f"[CALL SESSION] {self.state.value} -> {new_state.value} - CallId: {self.call_id}")
        self.state = new_state
        return True

    def add_turn(self, turn: ConversationTurn) -> None:
        self.history.append(turn)

    def next_turn_id(self) -> str:
        """Allocate the id of the next gather this call will issue."""
        self.turn_seq += 1
        return str(self.turn_seq)

    def cached_response(self, turn_id: Optional[str]) -> Optional[str]:
        if not turn_id:
            return None
        return self._responses.get(turn_id)

    def remember_response(self, turn_id: Optional[str], markup: str) -> None:
        if not turn_id:
            return
        self._responses[turn_id] = markup
        while len(self._responses) > self.RESPONSE_CACHE_SIZE:
            self._responses.pop(next(iter(self._responses)))

    def get_transcript_text(self) -> str:
        """Get full transcript as text."""
        labels = {"customer": "Customer", "agent": "Agent"}
        return "\n".join(f"{labels.get(t.role, t.role)}: {t.text}" for t in self.history)

    def duration_seconds(self) -> int:
        end = self.ended_at or datetime.utcnow()
        return max(0, int((end - self.started_at).total_seconds()))

    def snapshot(self) -> Dict[str, Any]:
        """Serializable view for the active-calls API."""
        return {
            "callId": self.call_id,
            "providerCallSid": self.provider_call_sid,
            "campaignId": self.campaign_id,
            "contactId": self.contact_id,
            "phoneNumber": self.phone_number,
            "state": self.state.value,
            "language": self.language,
            "startedAt": self.started_at.isoformat(),
            "turns": len(self.history),
            "collectedData": self.collected.as_dict(),
        }
