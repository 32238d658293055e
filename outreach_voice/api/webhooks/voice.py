"""Twilio voice webhook endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, Query, Request
from fastapi.responses import Response

from outreach_voice.core.config import settings
from outreach_voice.core.dependencies import get_session_manager
from outreach_voice.core.errors import ProtocolFailure
from outreach_voice.services.agent.constants import APOLOGY_GOODBYE
from outreach_voice.services.call_session.manager import CallSessionManager
from outreach_voice.services.speech.stt import TurnInput
from outreach_voice.services.telephony.twiml import assert_markup_contract, final_verb, plain_hangup

router = APIRouter()
logger = logging.getLogger(__name__)


def get_base_url(request: Request) -> str:
    """
    Get the base URL for constructing absolute URLs.

    Uses BASE_URL environment variable if set (e.g., behind a tunnel or proxy),
    otherwise constructs from request.
    """
    if settings.base_url:
        return settings.base_url.rstrip('/')
    return str(request.base_url).rstrip('/')


def xml_response(twiml: str) -> Response:
    return Response(content=twiml, media_type="application/xml")


@router.post("/voice/answer")
async def handle_answer(
    request: Request,
    callId: Optional[str] = Query(None),
    campaignId: Optional[str] = Query(None),
    CallSid: Optional[str] = Form(None),
    From: Optional[str] = Form(None),
    session_manager: CallSessionManager = Depends(get_session_manager),
):
    """
    Handle an answered call.

    Outbound calls carry our callId and campaignId in the query string;
    provider-initiated calls are keyed by CallSid.
    """
    logger.info(
        f"[ANSWER] Received answer webhook - CallId: {callId}, CallSid: {CallSid}, "
        f"Campaign: {campaignId}, Client: {request.client.host if request.client else 'unknown'}"
    )

    try:
        twiml = await session_manager.answer(
            callId,
            campaignId,
            CallSid,
            from_number=From or "",
            base_url=get_base_url(request),
        )
        assert_markup_contract(twiml)
        return xml_response(twiml)

    except ProtocolFailure as e:
        logger.warning(f"[ANSWER] Cannot route call, hanging up - CallId: {callId}, CallSid: {CallSid}, Error: {str(e)}")
        return xml_response(plain_hangup(APOLOGY_GOODBYE))

    except Exception as e:
        logger.error(
            f"[ANSWER] Error processing answer webhook - CallId: {callId}, CallSid: {CallSid}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )
        return xml_response(plain_hangup(APOLOGY_GOODBYE))


@router.post("/voice/process-turn/{call_id}")
async def handle_process_turn(
    request: Request,
    call_id: str,
    turn: Optional[str] = Query(None),
    SpeechResult: Optional[str] = Form(None),
    UnstableSpeechResult: Optional[str] = Form(None),
    Digits: Optional[str] = Form(None),
    RecordingUrl: Optional[str] = Form(None),
    session_manager: CallSessionManager = Depends(get_session_manager),
):
    """
    Handle gathered caller input.

    This endpoint is called after Twilio collects speech or digits, or hears nothing.
    """
    logger.info(
        f"[PROCESS TURN] Received caller input - CallId: {call_id}, Turn: {turn}, "
        f"SpeechResult length: {len(SpeechResult) if SpeechResult else 0}, Digits: {Digits or '-'}"
    )

    turn_input = TurnInput(
        speech_result=SpeechResult,
        unstable_speech_result=UnstableSpeechResult,
        digits=Digits,
        recording_url=RecordingUrl,
    )
    return await _run_turn(request, session_manager, call_id, turn_input, turn)


@router.post("/voice/recording-complete")
async def handle_recording_complete(
    request: Request,
    callId: Optional[str] = Query(None),
    turn: Optional[str] = Query(None),
    RecordingUrl: Optional[str] = Form(None),
    session_manager: CallSessionManager = Depends(get_session_manager),
):
    """Handle a finished recording captured when live recognition heard nothing."""
    logger.info(f"[RECORDING] Recording complete - CallId: {callId}, Turn: {turn}, Url: {RecordingUrl or '-'}")

    if not callId:
        logger.warning("[RECORDING] Recording webhook without callId, hanging up")
        return xml_response(plain_hangup(APOLOGY_GOODBYE))

    return await _run_turn(request, session_manager, callId, TurnInput(recording_url=RecordingUrl), turn)


async def _run_turn(
    request: Request,
    session_manager: CallSessionManager,
    call_id: str,
    turn_input: TurnInput,
    turn: Optional[str],
) -> Response:
    try:
        twiml = await session_manager.process_turn(
            call_id,
            turn_input,
            turn_id=turn,
            base_url=get_base_url(request),
        )
        assert_markup_contract(twiml)
        logger.debug(
            f"[PROCESS TURN] TwiML length: {len(twiml)} bytes, ends in {final_verb(twiml)} - CallId: {call_id}"
        )
        return xml_response(twiml)

    except ProtocolFailure as e:
        logger.warning(f"[PROCESS TURN] Cannot route turn, hanging up - CallId: {call_id}, Error: {str(e)}")
        return xml_response(plain_hangup(APOLOGY_GOODBYE))

    except Exception as e:
        logger.error(
            f"[PROCESS TURN] Error processing caller input - CallId: {call_id}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )
        return xml_response(plain_hangup(APOLOGY_GOODBYE))


@router.post("/voice/status")
async def handle_call_status(
    request: Request,
    callId: Optional[str] = Query(None),
    CallSid: Optional[str] = Form(None),
    CallStatus: str = Form(...),
    CallDuration: Optional[int] = Form(None),
    session_manager: CallSessionManager = Depends(get_session_manager),
):
    """
    Handle call status updates from Twilio.

    This endpoint is called when call status changes (ringing, answered, completed, failed, etc.).
    """
    call_id = callId or CallSid
    logger.info(
        f"[CALL STATUS] Received status update - CallId: {call_id}, "
        f"CallStatus: {CallStatus}, Duration: {CallDuration}"
    )

    try:
        await session_manager.update_status(call_id, CallStatus, duration=CallDuration)
    except Exception as e:
        logger.error(
            f"[CALL STATUS] Error handling call status update - CallId: {call_id}, "
            f"CallStatus: {CallStatus}, Error: {type(e).__name__}: {str(e)}",
            exc_info=True
        )

    # Always OK, Twilio retries otherwise
    return Response(content="OK", media_type="text/plain")
