"""Unit tests for speech recognition and normalization."""
import asyncio
import pytest

from outreach_voice.services.speech.normalizer import SpeechNormalizer, match_end_phrase
from outreach_voice.services.speech.stt import (
    NOT_CAUGHT_TEXT,
    SpeechToTextService,
    Transcriber,
    TurnInput,
)


class StaticTranscriber(Transcriber):
    name = "static"

    def __init__(self, text):
        self.text = text
        self.urls = []

    async def transcribe(self, recording_url):
        self.urls.append(recording_url)
        return self.text


class BrokenTranscriber(Transcriber):
    name = "broken"

    async def transcribe(self, recording_url):
        raise RuntimeError("upstream 500")


class SlowTranscriber(Transcriber):
    name = "slow"

    async def transcribe(self, recording_url):
        await asyncio.sleep(5)
        return "too late"


class TestSpeechNormalizer:
    """Test recognized-text cleanup."""

    def test_collapses_whitespace_and_capitalizes(self):
        normalizer = SpeechNormalizer()
        assert normalizer.normalize("  HELLO    there  ") == "Hello there"

    def test_strips_symbols_but_keeps_contact_punctuation(self):
        normalizer = SpeechNormalizer()
        result = normalizer.normalize("My email is #ravi.k@gmail.com* and number +91-98765")
        assert result == "My email is ravi.k@gmail.com and number +91-98765"

    def test_applies_corrections_case_insensitively(self):
        normalizer = SpeechNormalizer({"what's app": "WhatsApp", "lab check": "LabsCheck"})
        assert normalizer.normalize("Send it on What's App") == "Send it on WhatsApp"
        assert normalizer.normalize("lab check sounds good") == "LabsCheck sounds good"

    def test_corrections_respect_word_boundaries(self):
        normalizer = SpeechNormalizer({"lab": "LabsCheck"})
        assert normalizer.normalize("laboratory") == "Laboratory"

    def test_empty_text(self):
        assert SpeechNormalizer().normalize("  ### ") == ""


class TestEndPhrases:
    """Test termination phrase matching."""

    def test_match_anywhere_in_text(self):
        phrases = ["not interested", "stop calling", "goodbye"]
        assert match_end_phrase("Sorry, NOT interested at all", phrases) == "not interested"
        assert match_end_phrase("please stop calling me", phrases) == "stop calling"

    def test_first_configured_phrase_wins(self):
        phrases = ["not interested", "stop calling"]
        assert match_end_phrase("stop calling, not interested", phrases) == "not interested"

    def test_no_match(self):
        assert match_end_phrase("tell me more", ["goodbye"]) is None


class TestSpeechToText:
    """Test the input priority chain."""

    @pytest.mark.asyncio
    async def test_primary_hypothesis_wins(self):
        service = SpeechToTextService(transcribers=[], corrections={})
        result = await service.recognize(
            TurnInput(speech_result="yes please", unstable_speech_result="yes peas", digits="1")
        )
        assert result.text == "Yes please"
        assert result.source == "speech"

    @pytest.mark.asyncio
    async def test_unstable_hypothesis_used_when_primary_blank(self):
        service = SpeechToTextService(transcribers=[], corrections={})
        result = await service.recognize(TurnInput(speech_result="   ", unstable_speech_result="okay"))
        assert result.text == "Okay"
        assert result.source == "unstable"

    @pytest.mark.asyncio
    async def test_digits(self):
        service = SpeechToTextService(transcribers=[], corrections={})
        result = await service.recognize(TurnInput(digits="42"))
        assert result.text == "User pressed 42"
        assert result.source == "digits"

    @pytest.mark.asyncio
    async def test_nothing_yields_not_caught_literal(self):
        service = SpeechToTextService(transcribers=[], corrections={})
        result = await service.recognize(TurnInput())
        assert result.text == NOT_CAUGHT_TEXT
        assert result.caught is False

    @pytest.mark.asyncio
    async def test_recording_is_transcribed(self):
        transcriber = StaticTranscriber("my number is 98765 43210")
        service = SpeechToTextService(transcribers=[transcriber], corrections={})

        result = await service.recognize(TurnInput(recording_url="https://api.twilio.com/rec/RE1"))

        assert result.source == "recording"
        assert result.text == "My number is 98765 43210"
        assert transcriber.urls == ["https://api.twilio.com/rec/RE1"]

    @pytest.mark.asyncio
    async def test_failing_transcriber_falls_through(self):
        service = SpeechToTextService(
            transcribers=[BrokenTranscriber(), StaticTranscriber("haan ji")], corrections={}
        )
        result = await service.recognize(TurnInput(recording_url="https://example/rec"))
        assert result.text == "Haan ji"

    @pytest.mark.asyncio
    async def test_transcription_bounded_by_deadline(self):
        service = SpeechToTextService(transcribers=[SlowTranscriber()], corrections={})
        result = await service.recognize(TurnInput(recording_url="https://example/rec"), timeout=0.05)
        assert result.text == NOT_CAUGHT_TEXT

    def test_end_phrase_uses_configured_list(self):
        service = SpeechToTextService(transcribers=[], end_phrases=["remove my number"])
        assert service.match_end_phrase("Please remove my number") == "remove my number"
        assert service.match_end_phrase("not interested") is None
