"""FastAPI dependencies."""
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from outreach_voice.db.database import get_db
from outreach_voice.services.agent.agent import DialogueService
from outreach_voice.services.agent.analysis import ConversationAnalyzer
from outreach_voice.services.call_session.manager import CallSessionManager
from outreach_voice.services.call_session.registry import CallRegistry, InMemoryCallRegistry
from outreach_voice.services.events.broadcaster import EventBroadcaster
from outreach_voice.services.speech.audio_store import AudioArtifactStore
from outreach_voice.services.speech.stt import SpeechToTextService
from outreach_voice.services.speech.tts import SpeechSynthesisService
from outreach_voice.services.telephony.client import TelephonyClient

# Process-wide state shared by every request
_registry = InMemoryCallRegistry()
_broadcaster = EventBroadcaster()
_audio_store = AudioArtifactStore()


def get_registry() -> CallRegistry:
    return _registry


def get_broadcaster() -> EventBroadcaster:
    return _broadcaster


def get_audio_store() -> AudioArtifactStore:
    return _audio_store


@lru_cache(maxsize=None)
def get_stt_service() -> SpeechToTextService:
    return SpeechToTextService()


@lru_cache(maxsize=None)
def get_dialogue_service() -> DialogueService:
    return DialogueService()


@lru_cache(maxsize=None)
def get_synthesis_service() -> SpeechSynthesisService:
    return SpeechSynthesisService(store=_audio_store)


@lru_cache(maxsize=None)
def get_analyzer() -> ConversationAnalyzer:
    return ConversationAnalyzer()


@lru_cache(maxsize=None)
def get_telephony_client() -> TelephonyClient:
    return TelephonyClient()


def get_session_manager(
    db: AsyncSession = Depends(get_db),
    registry: CallRegistry = Depends(get_registry),
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
    stt_service: SpeechToTextService = Depends(get_stt_service),
    dialogue_service: DialogueService = Depends(get_dialogue_service),
    synthesis_service: SpeechSynthesisService = Depends(get_synthesis_service),
    analyzer: ConversationAnalyzer = Depends(get_analyzer),
) -> CallSessionManager:
    """Get call session manager."""
    return CallSessionManager(
        db,
        registry,
        broadcaster,
        stt_service,
        dialogue_service,
        synthesis_service,
        analyzer,
    )
