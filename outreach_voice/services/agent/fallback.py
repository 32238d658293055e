"""Deterministic responder used when the generation service is unavailable."""
import re
from typing import Any, Dict, List, Optional

from outreach_voice.services.agent.constants import (
    EMAIL_HINT_KEYWORDS,
    FALLBACK_REPLIES,
    GREETING_KEYWORDS,
    NEGATIVE_KEYWORDS,
    POSITIVE_KEYWORDS,
    QUESTION_KEYWORDS,
)
from outreach_voice.services.agent.schemas import DialogueResponse

PHONE_PATTERN = re.compile(r"(?:\+?91[\s-]?)?([6-9]\d{9})")
SPACED_PHONE_PATTERN = re.compile(r"\b[6-9](?:[\s-]+\d){9}\b")
EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
SPOKEN_EMAIL_PATTERN = re.compile(
    r"\b([\w.]+)\s+at\s+([\w]+)\s+dot\s+(com|org|net|edu|in|co)\b", re.IGNORECASE
)


def _contains_any(text: str, keywords: List[str]) -> bool:
    return any(re.search(rf"\b{re.escape(keyword)}\b", text) for keyword in keywords)


def extract_phone_number(text: str) -> Optional[str]:
    """Find a 10-digit mobile number, spoken with or without separators."""
    match = PHONE_PATTERN.search(text)
    if match:
        return match.group(1)
    spaced = SPACED_PHONE_PATTERN.search(text)
    if spaced:
        return re.sub(r"[\s-]", "", spaced.group(0))
    return None


def extract_email(text: str) -> Optional[str]:
    """Find an email address, including the spoken "name at gmail dot com" form."""
    match = EMAIL_PATTERN.search(text)
    if match:
        return match.group(0).lower()
    spoken = SPOKEN_EMAIL_PATTERN.search(text)
    if spoken:
        return f"{spoken.group(1)}@{spoken.group(2)}.{spoken.group(3)}".lower()
    return None


class RuleBasedResponder:
    """Keyword lookup table that keeps the call moving without the generation service."""

    def respond(self, user_input: str, collected: Optional[Dict[str, Any]] = None) -> DialogueResponse:
        collected = collected or {}
        text = (user_input or "").lower()
        extracted: Dict[str, Any] = {"notes": f'Customer said: "{user_input}"'}

        phone = extract_phone_number(text)
        email = extract_email(text)

        if phone or email:
            if phone:
                extracted["whatsapp_number"] = phone
            if email:
                extracted["email"] = email
            extracted["customer_interest"] = "interested"
            has_phone = bool(phone or collected.get("whatsapp_number"))
            has_email = bool(email or collected.get("email"))
            if has_phone and has_email:
                extracted["contact_complete"] = "yes"
                return DialogueResponse(
                    message=FALLBACK_REPLIES["complete"], should_end_call=True, extracted_data=extracted
                )
            key = "ask_email" if has_phone else "ask_whatsapp_after_email"
            return DialogueResponse(message=FALLBACK_REPLIES[key], extracted_data=extracted)

        if _contains_any(text, NEGATIVE_KEYWORDS):
            extracted["customer_interest"] = "not_interested"
            return DialogueResponse(
                message=FALLBACK_REPLIES["decline"], should_end_call=True, extracted_data=extracted
            )

        if _contains_any(text, EMAIL_HINT_KEYWORDS):
            return DialogueResponse(message=FALLBACK_REPLIES["ask_email_spelled"], extracted_data=extracted)

        if _contains_any(text, POSITIVE_KEYWORDS):
            extracted["customer_interest"] = "interested"
            key = "ask_email" if collected.get("whatsapp_number") else "ask_whatsapp"
            return DialogueResponse(message=FALLBACK_REPLIES[key], extracted_data=extracted)

        if _contains_any(text, QUESTION_KEYWORDS):
            extracted["customer_interest"] = "neutral"
            return DialogueResponse(message=FALLBACK_REPLIES["explain"], extracted_data=extracted)

        if _contains_any(text, GREETING_KEYWORDS):
            return DialogueResponse(message=FALLBACK_REPLIES["greeting"], extracted_data=extracted)

        extracted["customer_interest"] = "neutral"
        return DialogueResponse(message=FALLBACK_REPLIES["default"], extracted_data=extracted)
