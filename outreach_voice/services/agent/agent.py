"""LLM dialogue service."""
import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from outreach_voice.core.config import settings
from outreach_voice.core.errors import GenerationServiceFailure
from outreach_voice.services.agent.constants import APOLOGY_GOODBYE
from outreach_voice.services.agent.fallback import RuleBasedResponder
from outreach_voice.services.agent.language import Language, detect_language
from outreach_voice.services.agent.prompt import build_messages, get_system_prompt
from outreach_voice.services.agent.schemas import DialogueResponse, parse_generation_output
from outreach_voice.services.call_session.models import ConversationTurn
from outreach_voice.services.persistence.campaigns import CampaignContext

logger = logging.getLogger(__name__)

# Upstream failures that the keyword responder can cover for
RECOVERABLE_ERRORS = (
    openai.RateLimitError,
    openai.APIConnectionError,  # includes APITimeoutError
    asyncio.TimeoutError,
)


@dataclass
class DialogueOutcome:
    """A dialogue response and how it was produced."""

    response: DialogueResponse
    language: Language
    source: str  # llm, default, rules, apology
    latency_ms: int
    error: Optional[str] = None


class DialogueService:
    """Produces the next agent line from the conversation so far."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        responder: Optional[RuleBasedResponder] = None,
        provider: Optional[str] = None,
    ):
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)
        self.responder = responder or RuleBasedResponder()
        self.provider = provider or settings.generation_provider

    async def respond(
        self,
        campaign: CampaignContext,
        history: List[ConversationTurn],
        user_input: str,
        collected: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> DialogueOutcome:
        """
        Generate the next agent response. Never raises.

        Args:
            campaign: Campaign prompt, script and model
            history: Conversation so far, excluding user_input
            user_input: The caller's newly recognized utterance
            collected: Contact data gathered so far
            timeout: Seconds left for the generation call

        Returns:
            DialogueOutcome with the response and its source
        """
        started = time.monotonic()
        language = detect_language(user_input)

        if self.provider == "rules":
            response = self.responder.respond(user_input, collected)
            return DialogueOutcome(response, language, "rules", self._elapsed(started))

        try:
            content = await self._complete(campaign, history, user_input, language, collected, timeout)
        except RECOVERABLE_ERRORS as e:
            logger.warning(
                f"[AGENT] Generation unavailable, using keyword responder - Error: {type(e).__name__}: {str(e)}"
            )
            response = self.responder.respond(user_input, collected)
            return DialogueOutcome(
                response, language, "rules", self._elapsed(started), error=type(e).__name__
            )
        except Exception as e:
            logger.error(
                f"[AGENT] Generation failed - Error: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )
            response = DialogueResponse(
                message=APOLOGY_GOODBYE,
                should_end_call=True,
                extracted_data={"notes": "Technical error during generation"},
            )
            return DialogueOutcome(
                response, language, "apology", self._elapsed(started), error=type(e).__name__
            )

        result = parse_generation_output(content)
        source = "default" if result.fallback else "llm"
        logger.info(
            f"[AGENT OUTPUT] Source: {source}, Message: '{result.response.message}', "
            f"End: {result.response.should_end_call}, Extracted: {json.dumps(result.response.extracted_data)}"
        )
        return DialogueOutcome(
            result.response,
            language,
            source,
            self._elapsed(started),
            error=getattr(result, "reason", None),
        )

    async def _complete(
        self,
        campaign: CampaignContext,
        history: List[ConversationTurn],
        user_input: str,
        language: Language,
        collected: Optional[Dict[str, Any]],
        timeout: Optional[float],
    ) -> Optional[str]:
        system_prompt = get_system_prompt(campaign, language, collected)
        messages = build_messages(system_prompt, history, user_input, settings.history_window)

        logger.info(
            f"[AGENT INPUT] User Input: '{user_input}', Language: {language.value}, "
            f"History turns: {min(len(history), settings.history_window)}"
        )

        request = self.client.chat.completions.create(
            model=campaign.model or settings.openai_model,
            messages=messages,
            temperature=0.3,
            max_tokens=settings.generation_max_tokens,
            response_format={"type": "json_object"},
        )
        if timeout is not None:
            if timeout <= 0:
                request.close()
                raise asyncio.TimeoutError()
            response = await asyncio.wait_for(request, timeout)
        else:
            response = await request

        if not response.choices:
            raise GenerationServiceFailure("Generation returned no choices")
        return response.choices[0].message.content

    @staticmethod
    def _elapsed(started: float) -> int:
        return int((time.monotonic() - started) * 1000)
