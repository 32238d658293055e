"""Outbound call API endpoints."""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from outreach_voice.api.webhooks.voice import get_base_url
from outreach_voice.core.dependencies import get_session_manager, get_telephony_client
from outreach_voice.core.errors import ProtocolFailure
from outreach_voice.services.call_session.manager import CallSessionManager
from outreach_voice.services.telephony.client import TelephonyClient

router = APIRouter()
logger = logging.getLogger(__name__)


class StartCallRequest(BaseModel):
    """Outbound call request."""

    model_config = ConfigDict(populate_by_name=True)

    phone_number: str = Field(alias="phoneNumber", min_length=4)
    campaign_id: str = Field(alias="campaignId")
    contact_id: Optional[str] = Field(default=None, alias="contactId")


class StartCallResponse(BaseModel):
    callId: str
    providerCallSid: str


@router.post("/api/calls", response_model=StartCallResponse)
async def start_call(
    body: StartCallRequest,
    request: Request,
    session_manager: CallSessionManager = Depends(get_session_manager),
    telephony: TelephonyClient = Depends(get_telephony_client),
):
    """Dial a contact for a campaign."""
    logger.info(f"[CALLS] Outbound call requested - To: {body.phone_number}, Campaign: {body.campaign_id}")
    try:
        return await session_manager.start_outbound_call(
            telephony,
            body.phone_number,
            body.campaign_id,
            body.contact_id,
            base_url=get_base_url(request),
        )
    except ProtocolFailure as e:
        if e.call_id is None:
            raise HTTPException(status_code=404, detail=str(e))
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/api/calls/active")
async def list_active_calls(
    session_manager: CallSessionManager = Depends(get_session_manager),
) -> List[Dict[str, Any]]:
    """List calls currently in flight."""
    return await session_manager.active_calls()
