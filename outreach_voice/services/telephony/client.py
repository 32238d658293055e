"""Outbound dialing through the Twilio REST API."""
import asyncio
import logging
from typing import Optional

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from outreach_voice.core.config import settings
from outreach_voice.core.errors import ProtocolFailure

logger = logging.getLogger(__name__)

STATUS_EVENTS = ["initiated", "ringing", "answered", "completed"]


class TelephonyClient:
    """Places outbound calls whose webhooks point back at this service."""

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = Client(settings.twilio_account_sid, settings.twilio_auth_token)
        return self._client

    async def place_call(self, to: str, answer_url: str, status_url: str) -> str:
        """
        Dial a number.

        Returns:
            The provider's call SID
        """
        logger.info(f"[TELEPHONY] Dialing {to}")
        try:
            call = await asyncio.to_thread(
                self.client.calls.create,
                to=to,
                from_=settings.twilio_phone_number,
                url=answer_url,
                method="POST",
                status_callback=status_url,
                status_callback_method="POST",
                status_callback_event=STATUS_EVENTS,
                timeout=settings.call_ring_timeout,
            )
        except TwilioRestException as e:
            logger.error(f"[TELEPHONY] Dial failed - To: {to}, Status: {e.status}, Error: {e.msg}")
            raise ProtocolFailure(f"Dial failed: {e.msg}") from e
        logger.info(f"[TELEPHONY] Call placed - To: {to}, CallSid: {call.sid}")
        return call.sid
