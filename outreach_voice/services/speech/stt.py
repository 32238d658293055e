"""Speech-to-text service."""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Type

import httpx
from openai import AsyncOpenAI
from pydantic import BaseModel

from outreach_voice.core.config import settings
from outreach_voice.core.errors import RecognitionFailure
from outreach_voice.services.speech.normalizer import SpeechNormalizer, match_end_phrase

logger = logging.getLogger(__name__)

NOT_CAUGHT_TEXT = "I didn't catch that clearly"

TRANSCRIPTION_PROMPT = (
    "Sales call. Common words: WhatsApp, email, gmail, number, owner, manager, "
    "partnership, interested, haan, nahi, accha."
)


class TurnInput(BaseModel):
    """Raw caller input delivered by one telephony webhook."""

    speech_result: Optional[str] = None
    unstable_speech_result: Optional[str] = None
    digits: Optional[str] = None
    recording_url: Optional[str] = None


class RecognizedSpeech(BaseModel):
    """Normalized text for a turn and where it came from."""

    text: str
    source: str  # speech, unstable, digits, recording, none
    raw: Optional[str] = None

    @property
    def caught(self) -> bool:
        return self.source != "none"


class Transcriber(ABC):
    """Abstract base class for batch transcription of recorded audio."""

    name = "transcriber"

    @abstractmethod
    async def transcribe(self, recording_url: str) -> str:
        """Transcribe the recording at the given URL."""
        pass


class WhisperTranscriber(Transcriber):
    """Transcribes provider recordings with OpenAI Whisper."""

    name = "whisper"

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)

    async def fetch_recording(self, recording_url: str) -> bytes:
        """Download a recording using the provider's account credentials."""
        async with httpx.AsyncClient(
            auth=(settings.twilio_account_sid, settings.twilio_auth_token),
            follow_redirects=True,
        ) as client:
            response = await client.get(recording_url)
            response.raise_for_status()
            return response.content

    async def transcribe(self, recording_url: str) -> str:
        audio = await self.fetch_recording(recording_url)
        if not audio:
            raise RecognitionFailure("Recording is empty")

        transcript = await self.client.audio.transcriptions.create(
            model=settings.openai_transcription_model,
            file=("recording.wav", audio, "audio/wav"),
            prompt=TRANSCRIPTION_PROMPT,
            temperature=0,
        )
        return transcript.text


TRANSCRIBERS: Dict[str, Type[Transcriber]] = {
    WhisperTranscriber.name: WhisperTranscriber,
}


def build_transcribers(names: List[str]) -> List[Transcriber]:
    """Instantiate the configured transcriber chain, skipping unknown names."""
    chain = []
    for name in names:
        transcriber_cls = TRANSCRIBERS.get(name)
        if transcriber_cls is None:
            logger.warning(f"[STT] Unknown recognition provider '{name}' ignored")
            continue
        chain.append(transcriber_cls())
    return chain


class SpeechToTextService:
    """Turns a turn's raw input into normalized text."""

    def __init__(
        self,
        transcribers: Optional[List[Transcriber]] = None,
        corrections: Optional[Dict[str, str]] = None,
        end_phrases: Optional[List[str]] = None,
    ):
        self.transcribers = (
            transcribers if transcribers is not None else build_transcribers(settings.recognition_providers)
        )
        self.normalizer = SpeechNormalizer(
            corrections if corrections is not None else settings.speech_corrections
        )
        self.end_phrases = end_phrases if end_phrases is not None else settings.end_phrases

    async def recognize(self, turn: TurnInput, timeout: Optional[float] = None) -> RecognizedSpeech:
        """
        Pick the first usable input for the turn.

        Priority: live hypothesis, alternate hypothesis, DTMF digits, recorded
        audio transcription, then a fixed not-caught message. Never raises.
        """
        candidates = (
            ("speech", turn.speech_result),
            ("unstable", turn.unstable_speech_result),
        )
        for source, value in candidates:
            if value and value.strip():
                text = self.normalizer.normalize(value)
                if text:
                    logger.debug(f"[STT] Using {source} hypothesis: '{text}'")
                    return RecognizedSpeech(text=text, source=source, raw=value)

        if turn.digits and turn.digits.strip():
            digits = turn.digits.strip()
            logger.debug(f"[STT] Using DTMF input: '{digits}'")
            return RecognizedSpeech(
                text=self.normalizer.normalize(f"User pressed {digits}"),
                source="digits",
                raw=digits,
            )

        if turn.recording_url:
            transcript = await self._transcribe(turn.recording_url, timeout)
            if transcript:
                text = self.normalizer.normalize(transcript)
                if text:
                    return RecognizedSpeech(text=text, source="recording", raw=transcript)

        logger.info("[STT] No usable input in turn")
        return RecognizedSpeech(text=NOT_CAUGHT_TEXT, source="none")

    async def _transcribe(self, recording_url: str, timeout: Optional[float]) -> Optional[str]:
        for transcriber in self.transcribers:
            try:
                if timeout is not None:
                    transcript = await asyncio.wait_for(transcriber.transcribe(recording_url), timeout)
                else:
                    transcript = await transcriber.transcribe(recording_url)
            except asyncio.TimeoutError:
                logger.warning(f"[STT] {transcriber.name} transcription timed out after {timeout}s")
                continue
            except Exception as e:
                logger.warning(
                    f"[STT] {transcriber.name} transcription failed - Error: {type(e).__name__}: {str(e)}"
                )
                continue

            if transcript and transcript.strip():
                logger.info(f"[STT] {transcriber.name} transcription: '{transcript[:200]}'")
                return transcript
        return None

    def match_end_phrase(self, text: str) -> Optional[str]:
        """Return the end phrase the caller used, if any."""
        return match_end_phrase(text, self.end_phrases)
