"""Post-call summary and success scoring."""
import asyncio
import logging
import re
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from outreach_voice.core.config import settings
from outreach_voice.services.agent.constants import SUMMARY_UNAVAILABLE
from outreach_voice.services.agent.prompt import SCORE_PROMPT, SUMMARY_PROMPT, get_score_prompt
from outreach_voice.services.call_session.models import ConversationTurn

logger = logging.getLogger(__name__)

_NUMBER = re.compile(r"-?\d+")


def parse_score(content: Optional[str], default: int) -> int:
    """Pull the first integer out of the reply and clamp it to 1..100."""
    if not content:
        return default
    match = _NUMBER.search(content)
    if not match:
        return default
    return max(1, min(100, int(match.group(0))))


class ConversationAnalyzer:
    """Summarizes a finished call and rates how well it met the campaign objective."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None):
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)
        self.model = model or settings.openai_model

    async def summarize(self, history: List[ConversationTurn], timeout: Optional[float] = None) -> str:
        if not history:
            return SUMMARY_UNAVAILABLE

        conversation = "\n".join(f"{turn.role}: {turn.text}" for turn in history)
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": SUMMARY_PROMPT},
                        {"role": "user", "content": conversation},
                    ],
                    temperature=0.3,
                    max_tokens=200,
                ),
                timeout or settings.analysis_timeout_seconds,
            )
            summary = (response.choices[0].message.content or "").strip()
            return summary or SUMMARY_UNAVAILABLE
        except Exception as e:
            logger.warning(f"[ANALYSIS] Summary failed - Error: {type(e).__name__}: {str(e)}")
            return SUMMARY_UNAVAILABLE

    async def score(
        self,
        collected: Dict[str, Any],
        objective: str,
        transcript: str,
        timeout: Optional[float] = None,
    ) -> int:
        default = settings.default_success_score
        if not transcript.strip():
            return default
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": SCORE_PROMPT},
                        {"role": "user", "content": get_score_prompt(objective, collected, transcript)},
                    ],
                    temperature=0,
                    max_tokens=10,
                ),
                timeout or settings.analysis_timeout_seconds,
            )
            return parse_score(response.choices[0].message.content, default)
        except Exception as e:
            logger.warning(f"[ANALYSIS] Scoring failed - Error: {type(e).__name__}: {str(e)}")
            return default
