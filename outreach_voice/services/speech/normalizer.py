"""Cleanup of recognized caller speech."""
import re
from typing import Dict, Iterable, Optional

_WHITESPACE = re.compile(r"\s+")
# Keep word characters, whitespace and the punctuation that carries meaning in
# contact details (emails, international numbers, contractions).
_SYMBOLS = re.compile(r"[^\w\s.,!?'@+-]")


class SpeechNormalizer:
    """Normalizes recognized text and applies domain vocabulary corrections."""

    def __init__(self, corrections: Optional[Dict[str, str]] = None):
        self.corrections = [
            (re.compile(rf"\b{re.escape(wrong)}\b", re.IGNORECASE), right)
            for wrong, right in (corrections or {}).items()
        ]

    def normalize(self, text: str) -> str:
        cleaned = _WHITESPACE.sub(" ", text or "").strip()
        cleaned = _SYMBOLS.sub("", cleaned)
        cleaned = _WHITESPACE.sub(" ", cleaned).strip().lower()
        for pattern, replacement in self.corrections:
            cleaned = pattern.sub(replacement, cleaned)
        if not cleaned:
            return ""
        return cleaned[0].upper() + cleaned[1:]


def match_end_phrase(text: str, end_phrases: Iterable[str]) -> Optional[str]:
    """Return the first configured end phrase contained in the text, ignoring case."""
    lowered = (text or "").lower()
    for phrase in end_phrases:
        if phrase and phrase.lower() in lowered:
            return phrase
    return None
