"""Application configuration."""
from typing import Dict, List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OpenAI
    openai_api_key: str
    openai_model: str = "gpt-4o-mini"
    openai_transcription_model: str = "whisper-1"

    # Twilio
    twilio_account_sid: str
    twilio_auth_token: str
    twilio_phone_number: str
    native_voice: str = "alice"
    call_ring_timeout: int = 20

    # ElevenLabs
    elevenlabs_api_key: Optional[str] = None
    elevenlabs_base_url: str = "https://api.elevenlabs.io/v1"
    default_voice_id: str = "21m00Tcm4TlvDq8ikWAM"
    default_voice_model: str = "eleven_multilingual_v2"

    # Database
    database_url: str

    # Public URL the telephony provider uses to reach us
    base_url: Optional[str] = None

    # Pipeline strategies
    recognition_providers: List[str] = ["whisper"]
    generation_provider: str = "openai"
    synthesis_provider: str = "elevenlabs"

    # Deadlines (seconds). The turn budget must stay below the provider's webhook timeout.
    turn_deadline_seconds: float = 10.0
    recognition_timeout_seconds: float = 4.0
    generation_timeout_seconds: float = 5.0
    synthesis_timeout_seconds: float = 3.5
    analysis_timeout_seconds: float = 20.0

    # Dialogue
    history_window: int = 10
    generation_max_tokens: int = 150
    default_success_score: int = 50
    max_missed_turns: int = 3
    recording_fallback_enabled: bool = True
    end_phrases: List[str] = [
        "not interested",
        "hang up",
        "end call",
        "goodbye",
        "bye",
        "no thank you",
        "stop calling",
        "remove my number",
        "not now",
        "busy",
    ]
    speech_corrections: Dict[str, str] = {
        "lab check": "LabsCheck",
        "labs check": "LabsCheck",
        "what's app": "WhatsApp",
        "whats app": "WhatsApp",
        "g mail": "gmail",
        "laboratory": "lab",
    }

    # Audio artifacts
    audio_dir: str = "temp/audio"
    audio_ttl_seconds: int = 30
    audio_sweep_interval_seconds: float = 5.0
    tts_max_chars: int = 400

    # Live events
    broadcast_send_timeout_seconds: float = 1.0

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


settings = Settings()
