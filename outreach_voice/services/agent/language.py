"""Caller language detection."""
import re
from enum import Enum

from outreach_voice.services.agent.constants import ENGLISH_KEYWORDS, HINDI_KEYWORDS

_WORD = re.compile(r"[a-z']+")
_DEVANAGARI = re.compile(r"[ऀ-ॿ]")


class Language(str, Enum):
    """Response language styles."""

    ENGLISH = "english"
    HINDI = "hindi"
    MIXED = "mixed"

    def __str__(self) -> str:
        return self.value


def detect_language(text: str) -> Language:
    """Guess the caller's language from keyword frequency."""
    if not text:
        return Language.ENGLISH
    if _DEVANAGARI.search(text):
        return Language.HINDI

    words = _WORD.findall(text.lower())
    hindi = sum(1 for word in words if word in HINDI_KEYWORDS)
    english = sum(1 for word in words if word in ENGLISH_KEYWORDS)

    if hindi > english:
        return Language.HINDI
    if english > hindi:
        return Language.ENGLISH
    if hindi == 0:
        return Language.ENGLISH
    return Language.MIXED


LANGUAGE_INSTRUCTIONS = {
    Language.ENGLISH: "The customer speaks English. Respond in simple, clear English.",
    Language.HINDI: "The customer speaks Hindi. Respond primarily in Hindi written in Latin script.",
    Language.MIXED: "The customer mixes Hindi and English. Match their natural Hinglish style.",
}

# Language codes for the provider's native voice
SPEECH_LOCALES = {
    Language.ENGLISH: "en-IN",
    Language.HINDI: "hi-IN",
    Language.MIXED: "en-IN",
}


def speech_locale(language: str) -> str:
    try:
        return SPEECH_LOCALES[Language(language)]
    except ValueError:
        return SPEECH_LOCALES[Language.ENGLISH]


def language_from_code(code: str) -> Language:
    """Map a campaign language code such as "en" or "hi-IN" to a response language."""
    code = (code or "").lower()
    if code.startswith("hi"):
        return Language.HINDI
    if code in ("mixed", "hinglish"):
        return Language.MIXED
    return Language.ENGLISH
