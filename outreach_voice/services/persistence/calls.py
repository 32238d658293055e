"""Call persistence service."""
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from outreach_voice.db.models import Call, CallMessage


class CallPersistenceService:
    """Service for persisting call data."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_call(
        self,
        call_id: str,
        phone_number: str = "",
        campaign_id: Optional[str] = None,
        contact_id: Optional[str] = None,
        provider_call_sid: Optional[str] = None,
    ) -> Call:
        """Create a new call record or return existing one."""
        existing_call = await self.get_call(call_id)
        if existing_call:
            return existing_call

        call = Call(
            call_id=call_id,
            phone_number=phone_number,
            campaign_id=campaign_id,
            contact_id=contact_id,
            provider_call_sid=provider_call_sid,
            status="in_progress",
        )
        self.db.add(call)
        await self.db.commit()
        await self.db.refresh(call)
        return call

    async def get_call(self, call_id: str) -> Optional[Call]:
        """Get call by its routing id."""
        result = await self.db.execute(select(Call).where(Call.call_id == call_id))
        return result.scalar_one_or_none()

    async def get_call_with_messages(self, call_id: str) -> Optional[Call]:
        result = await self.db.execute(
            select(Call)
            .where(Call.call_id == call_id)
            .options(selectinload(Call.messages))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def set_provider_call_sid(self, call_id: str, provider_call_sid: str) -> Optional[Call]:
        call = await self.get_call(call_id)
        if call:
            call.provider_call_sid = provider_call_sid
            await self.db.commit()
            await self.db.refresh(call)
        return call

    async def update_call_status(
        self, call_id: str, status: str, ended_at: Optional[datetime] = None
    ) -> Optional[Call]:
        """Update call status."""
        call = await self.get_call(call_id)
        if call:
            call.status = status
            if ended_at:
                call.ended_at = ended_at
            await self.db.commit()
            await self.db.refresh(call)
        return call

    async def record_turn(
        self,
        call_id: str,
        messages: List[Dict[str, Any]],
        collected_data: Optional[Dict[str, Any]] = None,
        ai_response_time: Optional[int] = None,
    ) -> Optional[Call]:
        """Append turn messages and snapshot the collected data in one commit."""
        call = await self.get_call(call_id)
        if not call:
            return None

        for message in messages:
            self.db.add(
                CallMessage(
                    call_id=call.id,
                    role=message["role"],
                    content=message["content"],
                    turn_id=message.get("turn_id"),
                    timestamp=message.get("timestamp") or datetime.utcnow(),
                )
            )

        if collected_data is not None:
            call.collected_data = dict(collected_data)
            if collected_data.get("whatsapp_number"):
                call.extracted_whatsapp = collected_data["whatsapp_number"]
            if collected_data.get("email"):
                call.extracted_email = collected_data["email"]
        if ai_response_time is not None:
            call.ai_response_time = ai_response_time

        await self.db.commit()
        await self.db.refresh(call)
        return call

    async def finalize_call(
        self,
        call_id: str,
        status: str,
        ended_at: datetime,
        duration: Optional[int] = None,
        outcome: Optional[str] = None,
        transcript: Optional[str] = None,
        summary: Optional[str] = None,
        success_score: Optional[int] = None,
        collected_data: Optional[Dict[str, Any]] = None,
    ) -> Optional[Call]:
        """Write the end-of-call fields. Fields passed as None are left untouched."""
        call = await self.get_call(call_id)
        if not call:
            return None

        call.status = status
        call.ended_at = ended_at
        if duration is not None:
            call.duration = duration
        if outcome is not None:
            call.outcome = outcome
        if transcript:
            call.transcript = transcript
        if summary is not None:
            call.conversation_summary = summary
        if success_score is not None:
            call.success_score = success_score
        if collected_data:
            call.collected_data = dict(collected_data)

        await self.db.commit()
        await self.db.refresh(call)
        return call

    async def set_contact(self, call_id: str, contact_id: str) -> Optional[Call]:
        call = await self.get_call(call_id)
        if call:
            call.contact_id = contact_id
            await self.db.commit()
            await self.db.refresh(call)
        return call
