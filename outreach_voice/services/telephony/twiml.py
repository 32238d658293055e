"""TwiML builders for voice webhooks.

Every document ends in exactly one of Gather, Record or Hangup, so the
provider always knows what to do once the agent line finishes.
"""
import xml.etree.ElementTree as ET
from typing import Optional, Union

from twilio.twiml.voice_response import Gather, VoiceResponse

from outreach_voice.core.config import settings
from outreach_voice.services.speech.tts import SpokenLine

TERMINAL_VERBS = ("Gather", "Record", "Hangup")

GATHER_TIMEOUT_SECONDS = 5
RECORD_MAX_LENGTH_SECONDS = 30


def add_line(parent: Union[VoiceResponse, Gather], line: SpokenLine) -> None:
    """Voice a line with premium audio when rendered, else with the native voice."""
    if line.audio_url:
        parent.play(line.audio_url)
    else:
        parent.say(line.text, voice=line.voice, language=line.language)


def gather_response(line: SpokenLine, action_url: str, locale: Optional[str] = None) -> str:
    """Speak the line and listen for the caller's reply."""
    resp = VoiceResponse()
    gather = Gather(
        input="speech dtmf",
        action=action_url,
        method="POST",
        timeout=GATHER_TIMEOUT_SECONDS,
        speech_timeout="auto",
        language=locale or line.language,
        action_on_empty_result=True,
    )
    add_line(gather, line)
    resp.append(gather)
    return str(resp)


def record_response(line: SpokenLine, action_url: str) -> str:
    """Speak the line and capture the reply as a recording for batch transcription."""
    resp = VoiceResponse()
    add_line(resp, line)
    resp.record(
        action=action_url,
        method="POST",
        max_length=RECORD_MAX_LENGTH_SECONDS,
        timeout=3,
        play_beep=False,
        trim="trim-silence",
    )
    return str(resp)


def hangup_response(line: Optional[SpokenLine] = None) -> str:
    """Speak an optional closing line, then end the call."""
    resp = VoiceResponse()
    if line is not None:
        add_line(resp, line)
    resp.hangup()
    return str(resp)


def plain_hangup(text: str, language: str = "en-IN") -> str:
    """Closing line in the native voice, for paths that never reach synthesis."""
    return hangup_response(SpokenLine(text=text, voice=settings.native_voice, fallback=True, language=language))


def final_verb(markup: str) -> Optional[str]:
    root = ET.fromstring(markup)
    children = list(root)
    return children[-1].tag if children else None


def assert_markup_contract(markup: str) -> None:
    """Raise ValueError unless the document ends in exactly one terminal verb."""
    root = ET.fromstring(markup)
    if root.tag != "Response":
        raise ValueError(f"Root element is {root.tag}, expected Response")
    children = list(root)
    if final_verb(markup) not in TERMINAL_VERBS:
        raise ValueError("Response does not end in Gather, Record or Hangup")
    terminal = [child for child in children if child.tag in TERMINAL_VERBS]
    if len(terminal) != 1:
        raise ValueError(f"Response has {len(terminal)} terminal verbs, expected 1")
