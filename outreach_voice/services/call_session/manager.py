"""Call session manager."""
import logging
import time
from datetime import datetime
from typing import Any, Awaitable, Dict, List, Optional
from urllib.parse import urlencode

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from outreach_voice.core.config import settings
from outreach_voice.core.errors import PersistenceFailure, ProtocolFailure
from outreach_voice.services.agent.agent import DialogueService
from outreach_voice.services.agent.analysis import ConversationAnalyzer
from outreach_voice.services.agent.constants import (
    APOLOGY_GOODBYE,
    END_PHRASE_GOODBYE,
    MISSED_INPUT_GOODBYE,
    REPROMPT,
)
from outreach_voice.services.agent.language import language_from_code, speech_locale
from outreach_voice.services.call_session.models import CallSession, CallState, ConversationTurn
from outreach_voice.services.call_session.registry import CallRegistry
from outreach_voice.services.events import broadcaster as events
from outreach_voice.services.events.broadcaster import EventBroadcaster
from outreach_voice.services.extraction.collector import ConversationDataCollector
from outreach_voice.services.persistence.calls import CallPersistenceService
from outreach_voice.services.persistence.campaigns import CampaignContext, CampaignPersistenceService
from outreach_voice.services.speech.stt import SpeechToTextService, TurnInput
from outreach_voice.services.speech.tts import SpeechSynthesisService, SpokenLine
from outreach_voice.services.telephony.client import TelephonyClient
from outreach_voice.services.telephony.twiml import (
    gather_response,
    hangup_response,
    plain_hangup,
    record_response,
)

logger = logging.getLogger(__name__)

# Provider CallStatus values
RINGING_STATUSES = {"queued", "initiated", "ringing"}
ANSWERED_STATUSES = {"answered", "in-progress"}
TERMINAL_STATUSES = {
    "completed": CallState.COMPLETED,
    "failed": CallState.FAILED,
    "canceled": CallState.FAILED,
    "busy": CallState.BUSY,
    "no-answer": CallState.NO_ANSWER,
}

# Redeliveries of the answer webhook reuse the greeting markup
ANSWER_TURN_ID = "answer"


class TurnDeadline:
    """Time budget for one webhook, shared by the pipeline stages."""

    def __init__(self, budget: float):
        self.budget = budget
        self.started = time.monotonic()

    def remaining(self) -> float:
        return max(0.0, self.budget - (time.monotonic() - self.started))

    def stage(self, stage_timeout: float) -> float:
        """Timeout for the next stage: its own limit or whatever is left, whichever is smaller."""
        return min(stage_timeout, self.remaining())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0


class CallSessionManager:
    """Manages call sessions and orchestrates the conversation flow."""

    def __init__(
        self,
        db: AsyncSession,
        registry: CallRegistry,
        broadcaster: EventBroadcaster,
        stt_service: SpeechToTextService,
        dialogue_service: DialogueService,
        synthesis_service: SpeechSynthesisService,
        analyzer: ConversationAnalyzer,
    ):
        self.db = db
        self.registry = registry
        self.broadcaster = broadcaster
        self.stt_service = stt_service
        self.dialogue_service = dialogue_service
        self.synthesis_service = synthesis_service
        self.analyzer = analyzer
        self.collector = ConversationDataCollector(db)
        self.call_persistence = CallPersistenceService(db)
        self.campaign_persistence = CampaignPersistenceService(db)

    # URLs handed to the provider

    @staticmethod
    def answer_url(base_url: str, call_id: str, campaign_id: str) -> str:
        return f"{base_url}/webhooks/voice/answer?{urlencode({'callId': call_id, 'campaignId': campaign_id})}"

    @staticmethod
    def status_url(base_url: str, call_id: str) -> str:
        return f"{base_url}/webhooks/voice/status?{urlencode({'callId': call_id})}"

    @staticmethod
    def gather_url(base_url: str, call_id: str, turn_id: str) -> str:
        return f"{base_url}/webhooks/voice/process-turn/{call_id}?{urlencode({'turn': turn_id})}"

    @staticmethod
    def recording_url(base_url: str, call_id: str, turn_id: str) -> str:
        return f"{base_url}/webhooks/voice/recording-complete?{urlencode({'callId': call_id, 'turn': turn_id})}"

    # Outbound

    async def start_outbound_call(
        self,
        telephony: TelephonyClient,
        phone_number: str,
        campaign_id: str,
        contact_id: Optional[str],
        base_url: str,
    ) -> Dict[str, Any]:
        """
        Register a call, persist it and ask the provider to dial.

        Raises:
            ProtocolFailure: If the campaign is unknown or the provider refuses the call
        """
        campaign = await self.campaign_persistence.get_campaign(campaign_id)
        if campaign is None:
            raise ProtocolFailure(f"Unknown campaign {campaign_id}")

        call_id = await self.registry.create(phone_number, campaign_id, contact_id)
        async with self.registry.lock(call_id):
            session = await self.registry.get(call_id)
            record = await self._persist(
                session,
                "create_call",
                self.call_persistence.create_call(
                    call_id,
                    phone_number=phone_number,
                    campaign_id=campaign_id,
                    contact_id=contact_id,
                ),
            )
            if record is not None:
                session.record_id = record.id

            try:
                provider_call_sid = await telephony.place_call(
                    phone_number,
                    answer_url=self.answer_url(base_url, call_id, campaign_id),
                    status_url=self.status_url(base_url, call_id),
                )
            except ProtocolFailure as e:
                e.call_id = call_id
                self.broadcaster.publish(call_id, events.ERROR, {"kind": e.kind, "message": str(e)})
                await self.finalize(session, CallState.FAILED, "failed")
                raise

            session.provider_call_sid = provider_call_sid
            session.transition(CallState.RINGING)
            await self._persist(
                session,
                "set_provider_call_sid",
                self.call_persistence.set_provider_call_sid(call_id, provider_call_sid),
            )

        self.broadcaster.publish(
            call_id,
            events.CALL_STARTED,
            {"providerCallSid": provider_call_sid, "phoneNumber": phone_number, "campaignId": campaign_id},
        )
        return {"callId": call_id, "providerCallSid": provider_call_sid}

    # Webhooks

    async def answer(
        self,
        call_id: Optional[str],
        campaign_id: Optional[str],
        provider_call_sid: Optional[str],
        from_number: str = "",
        base_url: str = "",
    ) -> str:
        """
        Greet the callee and start listening.

        Raises:
            ProtocolFailure: If the call or campaign cannot be identified
        """
        call_id = call_id or provider_call_sid
        if not call_id:
            raise ProtocolFailure("Answer webhook without a call id")

        deadline = TurnDeadline(settings.turn_deadline_seconds)
        async with self.registry.lock(call_id):
            session = await self._get_or_create_session(call_id, campaign_id, from_number, provider_call_sid)

            cached = session.cached_response(ANSWER_TURN_ID)
            if cached:
                logger.info(f"[ANSWER] Redelivered answer webhook, replaying greeting - CallId: {call_id}")
                return cached

            campaign = await self._campaign(session)
            if campaign is None:
                raise ProtocolFailure(f"No campaign for call {call_id}", call_id=call_id)

            if provider_call_sid and not session.provider_call_sid:
                session.provider_call_sid = provider_call_sid
            if session.state in (CallState.CREATED, CallState.RINGING):
                session.transition(CallState.ACTIVE)

            language = language_from_code(campaign.language)
            session.language = language.value
            line = await self._render(session, campaign, campaign.intro_line, deadline, base_url)

            turn_id = session.next_turn_id()
            if not any(t.turn_id == ANSWER_TURN_ID for t in session.history):
                greeting = ConversationTurn(role="agent", text=line.text, audio_url=line.audio_url, turn_id=ANSWER_TURN_ID)
                session.add_turn(greeting)
                await self._persist(session, "record_turn", self.collector.persist_turn(session, [greeting]))

            markup = gather_response(line, self.gather_url(base_url, call_id, turn_id))
            session.transition(CallState.GATHERING)
            session.remember_response(ANSWER_TURN_ID, markup)

        logger.info(f"[ANSWER] Greeting issued - CallId: {call_id}, Voice: {line.voice}, Fallback: {line.fallback}")
        return markup

    async def process_turn(
        self,
        call_id: str,
        turn: TurnInput,
        turn_id: Optional[str] = None,
        base_url: str = "",
    ) -> str:
        """
        Run one conversational turn: recognize, respond, synthesize.

        Returns:
            TwiML XML ending in a Gather, a Record or a Hangup
        """
        deadline = TurnDeadline(settings.turn_deadline_seconds)
        session = await self._resume_session(call_id)
        if session is None:
            logger.warning(f"[PROCESS TURN] Unknown or finished call, hanging up - CallId: {call_id}")
            return plain_hangup(APOLOGY_GOODBYE)

        if session.hangup_requested:
            return plain_hangup(END_PHRASE_GOODBYE, language=self._locale(session))

        async with self.registry.lock(call_id):
            cached = session.cached_response(turn_id)
            if cached:
                logger.info(f"[PROCESS TURN] Redelivered turn {turn_id}, replaying response - CallId: {call_id}")
                return cached

            if not session.is_live:
                logger.info(f"[PROCESS TURN] Call is ending, ignoring turn - CallId: {call_id}, State: {session.state}")
                return plain_hangup(END_PHRASE_GOODBYE, language=self._locale(session))

            campaign = await self._campaign(session)
            if campaign is None:
                raise ProtocolFailure(f"No campaign for call {call_id}", call_id=call_id)

            # A recovered session never saw the gathers issued before the restart
            if turn_id and turn_id.isdigit():
                session.turn_seq = max(session.turn_seq, int(turn_id))
            session.transition(CallState.PROCESSING)
            markup = await self._run_turn(session, campaign, turn, turn_id, base_url, deadline)
            session.remember_response(turn_id, markup)

        logger.info(
            f"[PROCESS TURN] Turn complete - CallId: {call_id}, Turn: {turn_id}, "
            f"State: {session.state}, Elapsed: {settings.turn_deadline_seconds - deadline.remaining():.2f}s"
        )
        return markup

    async def _run_turn(
        self,
        session: CallSession,
        campaign: CampaignContext,
        turn: TurnInput,
        turn_id: Optional[str],
        base_url: str,
        deadline: TurnDeadline,
    ) -> str:
        call_id = session.call_id
        recognized = await self.stt_service.recognize(
            turn, timeout=deadline.stage(settings.recognition_timeout_seconds)
        )
        if session.hangup_requested:
            return plain_hangup(END_PHRASE_GOODBYE, language=self._locale(session))

        if not recognized.caught:
            return await self._handle_missed_input(session, campaign, turn, base_url, deadline)

        session.missed_turns = 0
        self.broadcaster.publish(call_id, events.SPEECH_RECOGNIZED, {"text": recognized.text, "source": recognized.source})
        customer_turn = ConversationTurn(role="customer", text=recognized.text, turn_id=turn_id)

        end_phrase = self.stt_service.match_end_phrase(recognized.text)
        if end_phrase:
            logger.info(f"[PROCESS TURN] End phrase '{end_phrase}' detected - CallId: {call_id}")
            line = await self._render(session, campaign, END_PHRASE_GOODBYE, deadline, base_url)
            agent_turn = ConversationTurn(role="agent", text=line.text, audio_url=line.audio_url, turn_id=turn_id)
            session.add_turn(customer_turn)
            session.add_turn(agent_turn)
            self.collector.merge(session, {"customer_interest": "not_interested", "notes": f"Ended call: {end_phrase}"})
            await self._end_conversation(session, "not_interested", [customer_turn, agent_turn])
            return hangup_response(line)

        self.broadcaster.publish(call_id, events.GENERATION_REQUESTED, {"text": recognized.text})
        outcome = await self.dialogue_service.respond(
            campaign,
            list(session.history),
            recognized.text,
            collected=session.collected.as_dict(),
            timeout=deadline.stage(settings.generation_timeout_seconds),
        )
        if session.hangup_requested:
            logger.info(f"[PROCESS TURN] Call ended during generation, discarding response - CallId: {call_id}")
            return plain_hangup(END_PHRASE_GOODBYE, language=self._locale(session))

        response = outcome.response
        session.language = outcome.language.value
        self.broadcaster.publish(
            call_id,
            events.GENERATION_RESPONDED,
            {**response.to_wire(), "source": outcome.source, "latencyMs": outcome.latency_ms},
        )
        if outcome.error:
            self.broadcaster.publish(call_id, events.ERROR, {"kind": "GenerationServiceFailure", "message": outcome.error})

        self.collector.merge(session, response.extracted_data)

        line = await self._render(session, campaign, response.message, deadline, base_url)
        if session.hangup_requested:
            logger.info(f"[PROCESS TURN] Call ended during synthesis, discarding response - CallId: {call_id}")
            return plain_hangup(END_PHRASE_GOODBYE, language=self._locale(session))

        agent_turn = ConversationTurn(
            role="agent",
            text=line.text,
            audio_url=line.audio_url,
            extracted=response.extracted_data or None,
            turn_id=turn_id,
        )
        session.add_turn(customer_turn)
        session.add_turn(agent_turn)

        if response.should_end_call:
            reason = "not_interested" if session.collected.customer_interest == "not_interested" else None
            if outcome.source == "apology":
                reason = "error"
            await self._end_conversation(session, reason, [customer_turn, agent_turn], outcome.latency_ms)
            return hangup_response(line)

        await self._persist(
            session,
            "record_turn",
            self.collector.persist_turn(session, [customer_turn, agent_turn], ai_response_time=outcome.latency_ms),
        )
        next_turn = session.next_turn_id()
        session.transition(CallState.GATHERING)
        return gather_response(line, self.gather_url(base_url, call_id, next_turn))

    async def _handle_missed_input(
        self,
        session: CallSession,
        campaign: CampaignContext,
        turn: TurnInput,
        base_url: str,
        deadline: TurnDeadline,
    ) -> str:
        session.missed_turns += 1
        logger.info(f"[PROCESS TURN] No usable input ({session.missed_turns} in a row) - CallId: {session.call_id}")

        if session.missed_turns >= settings.max_missed_turns:
            line = await self._render(session, campaign, MISSED_INPUT_GOODBYE, deadline, base_url)
            agent_turn = ConversationTurn(role="agent", text=line.text, audio_url=line.audio_url)
            session.add_turn(agent_turn)
            await self._end_conversation(session, "no_response", [agent_turn])
            return hangup_response(line)

        line = await self._render(session, campaign, REPROMPT, deadline, base_url)
        next_turn = session.next_turn_id()
        session.transition(CallState.GATHERING)

        # The second silent turn is captured as a recording for batch transcription
        if session.missed_turns == 2 and settings.recording_fallback_enabled and not turn.recording_url:
            return record_response(line, self.recording_url(base_url, session.call_id, next_turn))
        return gather_response(line, self.gather_url(base_url, session.call_id, next_turn))

    async def _end_conversation(
        self,
        session: CallSession,
        reason: Optional[str],
        turns: List[ConversationTurn],
        ai_response_time: Optional[int] = None,
    ) -> None:
        """Persist the last turn and wait for the provider to report the hangup."""
        if reason:
            session.end_reason = reason
        session.transition(CallState.ENDING)
        await self._persist(
            session,
            "record_turn",
            self.collector.persist_turn(session, turns, ai_response_time=ai_response_time),
        )
        if reason:
            await self._persist(
                session,
                "update_call_status",
                self.call_persistence.update_call_status(session.call_id, reason),
            )

    async def update_status(
        self,
        call_id: Optional[str],
        call_status: str,
        duration: Optional[int] = None,
    ) -> None:
        """
        Apply a provider status callback.

        Terminal statuses finalize the call; earlier ones advance the state.
        """
        if not call_id:
            raise ProtocolFailure("Status webhook without a call id")

        call_status = (call_status or "").lower()
        session = await self.registry.get(call_id)

        if call_status in RINGING_STATUSES:
            if session and session.state == CallState.CREATED:
                session.transition(CallState.RINGING)
            return
        if call_status in ANSWERED_STATUSES:
            if session and session.state in (CallState.CREATED, CallState.RINGING):
                session.transition(CallState.ACTIVE)
            return

        final_state = TERMINAL_STATUSES.get(call_status)
        if final_state is None:
            logger.debug(f"[CALL STATUS] Ignoring status '{call_status}' - CallId: {call_id}")
            return

        # Checked by in-flight turns before each side effect
        if session:
            session.hangup_requested = True

        async with self.registry.lock(call_id):
            session = await self.registry.get(call_id)
            if session is None:
                await self._finalize_untracked(call_id, call_status, duration)
                return
            db_status = call_status.replace("-", "_")
            if final_state == CallState.COMPLETED and session.end_reason:
                db_status = session.end_reason
            await self.finalize(session, final_state, db_status, duration)

    async def finalize(
        self,
        session: CallSession,
        final_state: CallState,
        db_status: str,
        duration: Optional[int] = None,
    ) -> None:
        """Release the session and write the end-of-call record. Runs at most once per call."""
        session.hangup_requested = True
        session.transition(final_state)
        session.ended_at = session.ended_at or datetime.utcnow()
        if await self.registry.end(session.call_id) is None:
            logger.info(f"[FINALIZE] Call already finalized - CallId: {session.call_id}")
            return

        campaign = await self._campaign(session)
        result = await self._persist(
            session,
            "finalize_call",
            self.collector.finalize(session, db_status, self.analyzer, campaign, duration),
        )
        payload = result or {"status": db_status, "collectedData": session.collected.as_dict()}
        self.broadcaster.publish(session.call_id, events.CALL_ENDED, payload)
        logger.info(f"[FINALIZE] Call ended - CallId: {session.call_id}, Status: {db_status}, Turns: {len(session.history)}")

    async def _finalize_untracked(self, call_id: str, call_status: str, duration: Optional[int]) -> None:
        try:
            record = await self.call_persistence.get_call(call_id)
            if record is None or record.ended_at is not None:
                logger.info(f"[CALL STATUS] No live session for status '{call_status}' - CallId: {call_id}")
                return
            await self.call_persistence.finalize_call(
                call_id,
                status=call_status.replace("-", "_"),
                ended_at=datetime.utcnow(),
                duration=duration,
            )
        except SQLAlchemyError as e:
            await self._persistence_failed(call_id, "finalize_call", e)

    async def active_calls(self) -> List[Dict[str, Any]]:
        return [session.snapshot() for session in await self.registry.active()]

    # Helpers

    async def _get_or_create_session(
        self,
        call_id: str,
        campaign_id: Optional[str],
        from_number: str,
        provider_call_sid: Optional[str],
    ) -> CallSession:
        session = await self.registry.get(call_id)
        if session:
            if campaign_id and not session.campaign_id:
                session.campaign_id = campaign_id
            return session

        record = await self._persist(
            None, "get_call", self.call_persistence.get_call_with_messages(call_id), call_id=call_id
        )
        if record is not None and record.ended_at is None:
            return await self.registry.ensure_tracked(call_id, record)

        if not campaign_id:
            raise ProtocolFailure(f"Answer webhook without a campaign id for {call_id}", call_id=call_id)

        # Provider-initiated call
        await self.registry.create(from_number, campaign_id, call_id=call_id)
        session = await self.registry.get(call_id)
        session.provider_call_sid = provider_call_sid
        record = await self._persist(
            session,
            "create_call",
            self.call_persistence.create_call(
                call_id,
                phone_number=from_number,
                campaign_id=campaign_id,
                provider_call_sid=provider_call_sid,
            ),
        )
        if record is not None:
            session.record_id = record.id
        self.broadcaster.publish(
            call_id,
            events.CALL_STARTED,
            {"providerCallSid": provider_call_sid, "phoneNumber": from_number, "campaignId": campaign_id},
        )
        return session

    async def _resume_session(self, call_id: str) -> Optional[CallSession]:
        """Find the live session, rebuilding it from storage if this process lost it."""
        session = await self.registry.get(call_id)
        if session:
            return session
        record = await self._persist(
            None, "get_call", self.call_persistence.get_call_with_messages(call_id), call_id=call_id
        )
        if record is None or record.ended_at is not None:
            return None
        async with self.registry.lock(call_id):
            return await self.registry.ensure_tracked(call_id, record)

    async def _campaign(self, session: CallSession) -> Optional[CampaignContext]:
        if not session.campaign_id:
            return None
        return await self._persist(
            session,
            "get_campaign",
            self.campaign_persistence.get_campaign(session.campaign_id),
        )

    async def _render(
        self,
        session: CallSession,
        campaign: CampaignContext,
        text: str,
        deadline: TurnDeadline,
        base_url: str,
    ) -> SpokenLine:
        line = await self.synthesis_service.render(
            text,
            campaign.voice_for(session.language),
            language=session.language,
            base_url=base_url,
            timeout=deadline.stage(settings.synthesis_timeout_seconds),
        )
        session.last_audio_url = line.audio_url
        self.broadcaster.publish(
            session.call_id,
            events.SYNTHESIS_COMPLETED,
            {"text": line.text, "audioUrl": line.audio_url, "voice": line.voice, "fallback": line.fallback},
        )
        if line.fallback and self.synthesis_service.synthesizer is not None:
            self.broadcaster.publish(
                session.call_id,
                events.ERROR,
                {"kind": "SynthesisFailure", "message": "Premium voice unavailable, used native voice"},
            )
        return line

    @staticmethod
    def _locale(session: CallSession) -> str:
        return speech_locale(session.language)

    async def _persist(
        self,
        session: Optional[CallSession],
        operation: str,
        awaitable: Awaitable[Any],
        call_id: Optional[str] = None,
    ) -> Any:
        """Await a store operation; failures are reported but never interrupt the call."""
        try:
            return await awaitable
        except SQLAlchemyError as e:
            await self._persistence_failed(session.call_id if session else call_id, operation, e)
            return None

    async def _persistence_failed(self, call_id: Optional[str], operation: str, error: Exception) -> None:
        await self.db.rollback()
        failure = PersistenceFailure(f"{operation} failed: {type(error).__name__}", call_id=call_id)
        logger.error(f"[PERSISTENCE] {failure} - CallId: {call_id}, Error: {str(error)}")
        self.broadcaster.publish(call_id or "", events.ERROR, {"kind": failure.kind, "operation": operation, "message": str(failure)})
