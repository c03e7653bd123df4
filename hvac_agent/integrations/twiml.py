"""TwiML documents for the voice webhook."""

from __future__ import annotations

from urllib.parse import urlencode

from twilio.twiml.voice_response import Gather, VoiceResponse

WEBHOOK_PATH = "/twilio/webhook"


def tts_url(base_url: str, text: str) -> str:
    return f"{base_url.rstrip('/')}/tts?{urlencode({'text': text})}"


def _gather(base_url: str) -> Gather:
    return Gather(
        input="speech",
        action=f"{base_url.rstrip('/')}{WEBHOOK_PATH}",
        method="POST",
        speech_timeout="auto",
    )


def gather_reply(base_url: str, text: str) -> str:
    """Speak ``text`` inside a speech ``<Gather>``; redirect to a reprompt when the caller stays silent."""

    response = VoiceResponse()
    gather = _gather(base_url)
    gather.play(tts_url(base_url, text))
    response.append(gather)
    response.redirect(f"{base_url.rstrip('/')}{WEBHOOK_PATH}?reprompt=1", method="POST")
    return str(response)


def closing_reply(base_url: str, text: str, goodbye: str | None) -> str:
    response = VoiceResponse()
    response.play(tts_url(base_url, text))
    if goodbye:
        response.play(tts_url(base_url, goodbye))
    response.hangup()
    return str(response)


def apology_reply(base_url: str, text: str) -> str:
    response = VoiceResponse()
    response.play(tts_url(base_url, text))
    response.hangup()
    return str(response)
