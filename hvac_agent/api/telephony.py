"""Twilio voice webhook and the ElevenLabs audio proxy it plays from."""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response
from twilio.request_validator import RequestValidator

from hvac_agent.core.config import Settings
from hvac_agent.core.logging import mask_phone
from hvac_agent.core.metrics import MetricsCollector
from hvac_agent.dialogue.controller import BookingController
from hvac_agent.dialogue.policy import BookingPolicy
from hvac_agent.dialogue.slots import empty_slots
from hvac_agent.dialogue.types import TurnInput
from hvac_agent.integrations.tts import MAX_TTS_CHARS, ElevenLabsSynthesizer, SpeechSynthesisError
from hvac_agent.integrations.twiml import apology_reply, closing_reply, gather_reply
from hvac_agent.memory.models import ASSISTANT, CALLER, CallRecord, CallSnapshot, TranscriptLine
from hvac_agent.memory.store import TranscriptStore

logger = logging.getLogger("hvac.twilio")


def public_base_url(request: Request, settings: Settings) -> str:
    if settings.public_base_url:
        return str(settings.public_base_url).rstrip("/")
    proto = request.headers.get("x-forwarded-proto") or request.url.scheme
    host = request.headers.get("host") or request.url.netloc
    return f"{proto}://{host}"


def _xml(document: str) -> Response:
    return Response(content=document, media_type="text/xml")


def create_telephony_router(
    settings: Settings,
    policy: BookingPolicy,
    controller: BookingController,
    store: TranscriptStore,
    synthesizer: ElevenLabsSynthesizer,
    metrics: MetricsCollector,
) -> APIRouter:
    router = APIRouter(tags=["telephony"])

    def load_snapshot(call_sid: str | None) -> CallSnapshot:
        if not call_sid:
            return CallSnapshot(call_sid="", lines=[], slots=empty_slots())
        try:
            return store.load_snapshot(call_sid)
        except sqlite3.Error:
            logger.exception("Could not load transcript for %s", call_sid)
            return CallSnapshot(call_sid=call_sid, lines=[], slots=empty_slots())

    def append(line: TranscriptLine) -> None:
        try:
            store.append_line(line)
        except sqlite3.Error:
            logger.exception("Could not persist %s line for %s", line.role, line.call_sid)

    def check_signature(request: Request, base_url: str, params: dict[str, str]) -> None:
        if not settings.twilio_auth_token:
            return
        url = f"{base_url}{request.url.path}"
        if request.url.query:
            url += f"?{request.url.query}"
        signature = request.headers.get("X-Twilio-Signature", "")
        validator = RequestValidator(settings.twilio_auth_token)
        if not signature or not validator.validate(url, params, signature):
            logger.warning("Rejected webhook with invalid Twilio signature")
            raise HTTPException(status_code=403, detail="Invalid Twilio signature")

    @router.post("/twilio/webhook")
    async def twilio_webhook(request: Request, reprompt: int = 0) -> Response:
        form = await request.form()
        params = {key: str(value) for key, value in form.items()}
        base_url = public_base_url(request, settings)
        check_signature(request, base_url, params)

        caller = params.get("From") or "Unknown"
        call_sid = params.get("CallSid") or None
        speech = (params.get("SpeechResult") or "").strip()

        if not speech:
            if reprompt:
                snapshot = load_snapshot(call_sid)
                return _xml(gather_reply(base_url, snapshot.last_question or policy.reprompt_fallback))

            logger.info("New call %s from %s", call_sid, mask_phone(caller))
            if call_sid:
                try:
                    store.record_call(
                        CallRecord(
                            call_sid=call_sid,
                            from_number=params.get("From"),
                            to_number=params.get("To"),
                            direction=params.get("Direction"),
                            status=params.get("CallStatus"),
                        )
                    )
                except sqlite3.Error:
                    logger.exception("Could not record call %s", call_sid)
            append(
                TranscriptLine(
                    call_sid=call_sid,
                    role=ASSISTANT,
                    text=policy.greeting,
                    turn_index=0,
                    caller_phone=caller,
                    metadata={"slots": empty_slots()},
                )
            )
            return _xml(gather_reply(base_url, policy.greeting))

        try:
            snapshot = load_snapshot(call_sid)
            turn_index = snapshot.next_turn_index
            history = [{"role": line.role, "content": line.text} for line in snapshot.lines]
            append(TranscriptLine(call_sid=call_sid, role=CALLER, text=speech, turn_index=turn_index, caller_phone=caller))

            result = await controller.handle(
                TurnInput(
                    utterance=speech,
                    call_sid=call_sid,
                    caller=caller,
                    slots=snapshot.slots,
                    last_question=snapshot.last_question,
                    history=history,
                )
            )
            metrics.record_turn(result.mode.value, result.source.value, result.done)

            metadata: dict[str, Any] = {
                "slots": result.slots,
                "done": result.done,
                "needs_confirmation": result.needs_confirmation,
                "goodbye": result.goodbye,
            }
            append(
                TranscriptLine(
                    call_sid=call_sid,
                    role=ASSISTANT,
                    text=result.reply,
                    turn_index=turn_index,
                    caller_phone=caller,
                    metadata=metadata,
                )
            )
        except Exception:  # noqa: BLE001
            logger.exception("Webhook turn failed for call %s", call_sid)
            return _xml(apology_reply(base_url, policy.error_reply))

        if result.done:
            logger.info("Call %s booked; hanging up", call_sid)
            return _xml(closing_reply(base_url, result.reply, result.goodbye))
        return _xml(gather_reply(base_url, result.reply))

    @router.get("/tts")
    async def text_to_speech(text: str = "", voiceId: str | None = None) -> Response:  # noqa: N803
        text = text[:MAX_TTS_CHARS]
        voice_id = (voiceId or settings.elevenlabs_voice_id or "").strip()
        if not text or not voice_id or not synthesizer.api_key:
            raise HTTPException(status_code=400, detail="Missing text, voiceId, or API key")

        try:
            audio = await synthesizer.synthesize(text, voice_id)
        except SpeechSynthesisError as exc:
            raise HTTPException(status_code=502, detail={"error": str(exc), "detail": exc.detail}) from exc
        return Response(content=audio, media_type="audio/mpeg", headers={"Cache-Control": "no-store"})

    return router
