"""Conversation data extraction and persistence."""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from outreach_voice.services.agent.analysis import ConversationAnalyzer
from outreach_voice.services.call_session.models import CallSession, ConversationTurn
from outreach_voice.services.persistence.calls import CallPersistenceService
from outreach_voice.services.persistence.campaigns import CampaignContext
from outreach_voice.services.persistence.contacts import ContactPersistenceService

logger = logging.getLogger(__name__)

# Collected field -> contact column
CONTACT_FIELD_MAP = {
    "contact_person": "name",
    "whatsapp_number": "whatsapp_number",
    "email": "email",
    "company": "company",
}


def contact_updates(collected: Dict[str, Any]) -> Dict[str, Any]:
    """Map collected data onto contact columns, skipping empty values."""
    return {
        column: collected[field]
        for field, column in CONTACT_FIELD_MAP.items()
        if collected.get(field)
    }


def call_outcome(session: CallSession) -> str:
    """Short label for how the conversation went."""
    if session.collected.contact_complete == "yes":
        return "contact_collected"
    if session.end_reason:
        return session.end_reason
    interest = session.collected.customer_interest
    if interest:
        return interest
    return "no_data" if not session.collected.as_dict() else "partial_data"


class ConversationDataCollector:
    """Accumulates extracted data per turn and writes the end-of-call record."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.calls = CallPersistenceService(db)
        self.contacts = ContactPersistenceService(db)

    def merge(self, session: CallSession, extracted: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Fold a turn's extracted fields into the session. Returns what changed."""
        changed = session.collected.merge(extracted)
        if changed:
            logger.info(f"[EXTRACTION] Collected {changed} - CallId: {session.call_id}")
        return changed

    async def persist_turn(
        self,
        session: CallSession,
        turns: List[ConversationTurn],
        ai_response_time: Optional[int] = None,
    ) -> None:
        """Append the turn's messages and the collected snapshot to the call record."""
        messages = [
            {
                "role": turn.role,
                "content": turn.text,
                "turn_id": turn.turn_id,
                "timestamp": turn.timestamp,
            }
            for turn in turns
        ]
        await self.calls.record_turn(
            session.call_id,
            messages,
            collected_data=session.collected.as_dict(),
            ai_response_time=ai_response_time,
        )

    async def finalize(
        self,
        session: CallSession,
        status: str,
        analyzer: ConversationAnalyzer,
        campaign: Optional[CampaignContext] = None,
        duration: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Write the end-of-call record and sync the contact.

        Args:
            session: The ended session
            status: Final call status
            analyzer: Summary and scoring service
            campaign: Campaign whose objective the call is scored against
            duration: Provider-reported duration in seconds, if known

        Returns:
            The fields written to the call record
        """
        collected = session.collected.as_dict()
        transcript = session.get_transcript_text()
        objective = campaign.prompt if campaign else ""

        summary = await analyzer.summarize(session.history)
        score = await analyzer.score(collected, objective, transcript)

        result = {
            "status": status,
            "outcome": call_outcome(session),
            "duration": duration if duration is not None else session.duration_seconds(),
            "summary": summary,
            "successScore": score,
            "collectedData": collected,
        }

        await self.calls.finalize_call(
            session.call_id,
            status=status,
            ended_at=session.ended_at or datetime.utcnow(),
            duration=result["duration"],
            outcome=result["outcome"],
            transcript=transcript,
            summary=summary,
            success_score=score,
            collected_data=collected,
        )
        await self.sync_contact(session, collected)

        logger.info(
            f"[EXTRACTION] Call finalized - CallId: {session.call_id}, Status: {status}, "
            f"Outcome: {result['outcome']}, Score: {score}"
        )
        return result

    async def sync_contact(self, session: CallSession, collected: Dict[str, Any]) -> None:
        """Update the called contact, or create one when a name was collected."""
        updates = contact_updates(collected)
        if not updates:
            return

        if session.contact_id:
            await self.contacts.update_contact(session.contact_id, updates)
            logger.info(f"[EXTRACTION] Contact updated - ContactId: {session.contact_id}, Fields: {list(updates)}")
            return

        name = updates.pop("name", None)
        if not name:
            return
        contact = await self.contacts.create_contact(name, session.phone_number, **updates)
        session.contact_id = contact.id
        await self.calls.set_contact(session.call_id, contact.id)
        logger.info(f"[EXTRACTION] Contact created - ContactId: {contact.id}, CallId: {session.call_id}")
