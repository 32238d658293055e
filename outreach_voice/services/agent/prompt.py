"""Agent prompt templates."""
import json
from typing import Any, Dict, List, Optional

from outreach_voice.services.agent.language import LANGUAGE_INSTRUCTIONS, Language
from outreach_voice.services.call_session.models import ConversationTurn
from outreach_voice.services.persistence.campaigns import CampaignContext


def get_system_prompt(
    campaign: CampaignContext,
    language: Language,
    collected: Optional[Dict[str, Any]] = None,
) -> str:
    """Generate system prompt for the agent."""
    script = f"\nCall script to follow loosely:\n{campaign.script}\n" if campaign.script else ""
    collected_text = json.dumps(collected or {}, ensure_ascii=False)

    return f"""You are {campaign.agent_name}, a friendly outbound calling agent for the "{campaign.name}" campaign.

Campaign instructions and objective:
{campaign.prompt}
{script}
The customer's words come from speech recognition on a phone line and may contain errors.
Understand what they mean, acknowledge it, and move the conversation toward the objective.

CUSTOMER LANGUAGE: {language.value.upper()}
{LANGUAGE_INSTRUCTIONS[language]}

Rules:
- Keep every reply to ONE short spoken sentence (under 25 words)
- Never read out JSON, lists or symbols
- Ask for one piece of contact information at a time
- If the customer clearly declines or asks you to stop, thank them and end the call
- When the objective is met, thank them and end the call

Information collected so far: {collected_text}

You must output your response in JSON format with this structure:
{{
    "message": "Your spoken reply to the customer",
    "shouldEndCall": false,
    "extractedData": {{
        "contact_person": "name if mentioned",
        "whatsapp_number": "number if mentioned",
        "email": "email if mentioned",
        "company": "business name if mentioned",
        "customer_interest": "interested|not_interested|neutral",
        "notes": "short note about what the customer said"
    }}
}}

Only include extractedData fields the customer actually gave you. Always output valid JSON."""


def build_messages(
    system_prompt: str,
    history: List[ConversationTurn],
    user_input: str,
    window: int,
) -> List[Dict[str, str]]:
    """Chat messages: system prompt, the last `window` turns, then the new utterance."""
    messages = [{"role": "system", "content": system_prompt}]
    recent = history[-window:] if window > 0 else []
    for turn in recent:
        role = "user" if turn.role == "customer" else "assistant"
        messages.append({"role": role, "content": turn.text})
    messages.append({"role": "user", "content": user_input})
    return messages


SUMMARY_PROMPT = (
    "Summarize this phone conversation between an AI calling agent and a prospect. "
    "Focus on key points discussed, contact information collected, and the overall outcome. "
    "Keep it concise: three sentences at most."
)

SCORE_PROMPT = (
    "Rate the success of this call on a scale of 1-100 based on how well it achieved the "
    "campaign objective. Consider the quality and completeness of the data collected. "
    "Respond with just a number between 1 and 100."
)


def get_score_prompt(objective: str, collected: Dict[str, Any], transcript: str) -> str:
    return (
        f"Campaign objective:\n{objective}\n\n"
        f"Data collected: {json.dumps(collected, ensure_ascii=False)}\n\n"
        f"Transcript:\n{transcript}"
    )
