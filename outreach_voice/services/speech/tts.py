"""Text-to-speech service."""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Type

import httpx
from pydantic import BaseModel

from outreach_voice.core.config import settings
from outreach_voice.core.errors import SynthesisFailure
from outreach_voice.services.agent.constants import DEFAULT_REPLY
from outreach_voice.services.agent.language import speech_locale
from outreach_voice.services.persistence.campaigns import VoiceSettings
from outreach_voice.services.speech.audio_store import AudioArtifactStore

logger = logging.getLogger(__name__)


class SpokenLine(BaseModel):
    """A line ready to be voiced on the call."""

    text: str
    audio_url: Optional[str] = None  # Set when premium audio was rendered
    voice: str  # Premium voice id, or the provider's native voice name
    fallback: bool = False
    language: str = "en-IN"


class Synthesizer(ABC):
    """Abstract base class for premium voice synthesis."""

    name = "synthesizer"

    @abstractmethod
    async def synthesize(self, text: str, voice: VoiceSettings) -> bytes:
        """Render text to MP3 audio."""
        pass


class ElevenLabsSynthesizer(Synthesizer):
    """Renders speech with the ElevenLabs REST API."""

    name = "elevenlabs"

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        self.api_key = api_key or settings.elevenlabs_api_key
        self.base_url = (base_url or settings.elevenlabs_base_url).rstrip("/")

    async def synthesize(self, text: str, voice: VoiceSettings) -> bytes:
        if not self.api_key:
            raise SynthesisFailure("ElevenLabs API key is not configured")

        payload = {
            "text": text,
            "model_id": voice.model,
            "voice_settings": {
                "stability": voice.stability,
                "similarity_boost": voice.similarity_boost,
                "style": voice.style,
                "use_speaker_boost": voice.use_speaker_boost,
            },
        }
        headers = {
            "xi-api-key": self.api_key,
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{self.base_url}/text-to-speech/{voice.voice_id}",
                json=payload,
                headers=headers,
            )
            if response.status_code != 200:
                raise SynthesisFailure(
                    f"ElevenLabs returned {response.status_code}: {response.text[:200]}"
                )
            if not response.content:
                raise SynthesisFailure("ElevenLabs returned empty audio")
            return response.content


SYNTHESIZERS: Dict[str, Type[Synthesizer]] = {
    ElevenLabsSynthesizer.name: ElevenLabsSynthesizer,
}


def prepare_text(text: Optional[str], max_chars: int) -> str:
    """Trim text for speaking, cutting long lines at a word boundary."""
    text = " ".join((text or "").split())
    if not text:
        return DEFAULT_REPLY
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars]
    if " " in cut:
        cut = cut[: cut.rfind(" ")]
    return cut.rstrip(" ,;:") + "."


class SpeechSynthesisService:
    """Turns an agent line into something the telephony provider can voice."""

    def __init__(
        self,
        synthesizer: Optional[Synthesizer] = None,
        store: Optional[AudioArtifactStore] = None,
        provider: Optional[str] = None,
    ):
        self.provider = provider or settings.synthesis_provider
        if synthesizer is None and self.provider in SYNTHESIZERS:
            synthesizer = SYNTHESIZERS[self.provider]()
        self.synthesizer = synthesizer
        self.store = store or AudioArtifactStore()

    def native(self, text: str, language: str) -> SpokenLine:
        """A line voiced by the provider's built-in text-to-speech."""
        return SpokenLine(
            text=prepare_text(text, settings.tts_max_chars),
            voice=settings.native_voice,
            fallback=True,
            language=speech_locale(language),
        )

    async def render(
        self,
        text: str,
        voice: VoiceSettings,
        language: str = "english",
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> SpokenLine:
        """
        Render a line with the premium voice, falling back to the native voice.

        Never raises. The returned line records which voice was used.
        """
        text = prepare_text(text, settings.tts_max_chars)
        if self.synthesizer is None or not base_url:
            return self.native(text, language)

        try:
            synthesis = self.synthesizer.synthesize(text, voice)
            if timeout is not None:
                if timeout <= 0:
                    synthesis.close()
                    raise asyncio.TimeoutError()
                audio = await asyncio.wait_for(synthesis, timeout)
            else:
                audio = await synthesis
            artifact = await self.store.save(audio)
        except asyncio.TimeoutError:
            logger.warning(f"[TTS] {self.synthesizer.name} timed out after {timeout}s, using native voice")
            return self.native(text, language)
        except Exception as e:
            logger.warning(
                f"[TTS] {self.synthesizer.name} failed, using native voice - Error: {type(e).__name__}: {str(e)}"
            )
            return self.native(text, language)

        return SpokenLine(
            text=text,
            audio_url=f"{base_url.rstrip('/')}/audio/{artifact.artifact_id}",
            voice=voice.voice_id,
            fallback=False,
            language=speech_locale(language),
        )
