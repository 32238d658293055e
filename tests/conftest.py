"""Shared test fixtures and configuration."""
import pytest
import os
from unittest.mock import Mock, AsyncMock

import httpx
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("TWILIO_ACCOUNT_SID", "test-sid")
os.environ.setdefault("TWILIO_AUTH_TOKEN", "test-token")
os.environ.setdefault("TWILIO_PHONE_NUMBER", "+15550000000")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from outreach_voice.main import app
from outreach_voice.db.database import get_db
from outreach_voice.db.models import Base, Campaign, Contact
from outreach_voice.core import dependencies
from outreach_voice.services.agent.agent import DialogueService
from outreach_voice.services.agent.analysis import ConversationAnalyzer
from outreach_voice.services.call_session.manager import CallSessionManager
from outreach_voice.services.call_session.registry import InMemoryCallRegistry
from outreach_voice.services.events.broadcaster import EventBroadcaster
from outreach_voice.services.speech.audio_store import AudioArtifactStore
from outreach_voice.services.speech.stt import SpeechToTextService
from outreach_voice.services.speech.tts import SpeechSynthesisService, Synthesizer
from outreach_voice.core.errors import SynthesisFailure


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def make_openai_client(*contents, side_effect=None):
    """Mock AsyncOpenAI client whose chat completions return the given contents in order."""
    mock_client = Mock()
    completions = [
        Mock(choices=[Mock(message=Mock(content=content))]) for content in contents
    ]
    if side_effect is not None:
        mock_client.chat.completions.create = AsyncMock(side_effect=side_effect)
    elif len(completions) == 1:
        mock_client.chat.completions.create = AsyncMock(return_value=completions[0])
    else:
        mock_client.chat.completions.create = AsyncMock(side_effect=completions)
    return mock_client


class FakeSynthesizer(Synthesizer):
    """Premium voice stand-in returning fixed bytes."""

    name = "fake"

    def __init__(self, audio: bytes = b"ID3fake-mp3"):
        self.audio = audio
        self.calls = []

    async def synthesize(self, text, voice):
        self.calls.append((text, voice.voice_id))
        return self.audio


class UnavailableSynthesizer(Synthesizer):
    """Premium voice that always fails."""

    name = "unavailable"

    def __init__(self):
        self.calls = 0

    async def synthesize(self, text, voice):
        self.calls += 1
        raise SynthesisFailure("ElevenLabs returned 503: unavailable")


class RecordingObserver:
    """Event observer that keeps everything it receives."""

    def __init__(self):
        self.events = []

    async def send_json(self, data):
        self.events.append(data)

    def types(self):
        return [event["type"] for event in self.events]


@pytest.fixture
async def test_db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def test_db(test_db_engine):
    """Create test database session."""
    async_session = async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session


@pytest.fixture
async def campaign(test_db):
    """A campaign with a premium voice configured."""
    record = Campaign(
        id="camp-1",
        name="Lab Partnerships",
        ai_prompt="Collect the prospect's WhatsApp number and email for a partnership offer.",
        intro_line="Hi, this is Anvika from LabsCheck. Am I speaking with the owner?",
        agent_name="Anvika",
        language="en",
        elevenlabs_model="eleven_multilingual_v2",
        voice_id="voice-premium",
        voice_config={"stability": 0.4, "similarityBoost": 0.8},
    )
    test_db.add(record)
    await test_db.commit()
    return record


@pytest.fixture
async def contact(test_db):
    record = Contact(id="contact-1", name="Ravi", phone="+919876500000")
    test_db.add(record)
    await test_db.commit()
    return record


@pytest.fixture
def registry():
    return InMemoryCallRegistry()


@pytest.fixture
async def broadcaster():
    broadcaster = EventBroadcaster(send_timeout=0.5)
    yield broadcaster
    await broadcaster.close()


@pytest.fixture
def observer(broadcaster):
    recorder = RecordingObserver()
    broadcaster.register(recorder)
    return recorder


@pytest.fixture
def audio_store(tmp_path):
    return AudioArtifactStore(directory=str(tmp_path / "audio"), ttl_seconds=30)


@pytest.fixture
def synthesizer():
    return FakeSynthesizer()


@pytest.fixture
def synthesis_service(synthesizer, audio_store):
    return SpeechSynthesisService(synthesizer=synthesizer, store=audio_store)


@pytest.fixture
def stt_service():
    return SpeechToTextService(transcribers=[])


@pytest.fixture
def dialogue_client():
    """Generation client that asks for a WhatsApp number."""
    return make_openai_client(
        '{"message": "Great! Could you share your WhatsApp number?", '
        '"shouldEndCall": false, "extractedData": {"customer_interest": "interested"}}'
    )


@pytest.fixture
def dialogue_service(dialogue_client):
    return DialogueService(client=dialogue_client, provider="openai")


@pytest.fixture
def analyzer():
    return ConversationAnalyzer(
        client=make_openai_client("The prospect declined the offer.", "20"),
        model="gpt-4o-mini",
    )


@pytest.fixture
def session_manager(test_db, registry, broadcaster, stt_service, dialogue_service, synthesis_service, analyzer):
    return CallSessionManager(
        test_db,
        registry,
        broadcaster,
        stt_service,
        dialogue_service,
        synthesis_service,
        analyzer,
    )


@pytest.fixture
def telephony():
    client = Mock()
    client.place_call = AsyncMock(return_value="CA0000000000000000000000000000abcd")
    return client


@pytest.fixture
def override_get_db(test_db):
    """Override get_db dependency with test database."""
    async def _override_get_db():
        yield test_db
    return _override_get_db


@pytest.fixture
async def api_client(
    override_get_db,
    registry,
    broadcaster,
    stt_service,
    dialogue_service,
    synthesis_service,
    analyzer,
    audio_store,
    telephony,
):
    """Async HTTP client bound to the app with every upstream service replaced."""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[dependencies.get_registry] = lambda: registry
    app.dependency_overrides[dependencies.get_broadcaster] = lambda: broadcaster
    app.dependency_overrides[dependencies.get_stt_service] = lambda: stt_service
    app.dependency_overrides[dependencies.get_dialogue_service] = lambda: dialogue_service
    app.dependency_overrides[dependencies.get_synthesis_service] = lambda: synthesis_service
    app.dependency_overrides[dependencies.get_analyzer] = lambda: analyzer
    app.dependency_overrides[dependencies.get_audio_store] = lambda: audio_store
    app.dependency_overrides[dependencies.get_telephony_client] = lambda: telephony

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    # Clear overrides
    app.dependency_overrides.clear()
