"""FastAPI application entry point for the HVAC Joy dispatch line."""

import logging
from typing import Any

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
import sqlite3

from hvac_agent.api.calendar import create_calendar_router
from hvac_agent.api.telephony import create_telephony_router
from hvac_agent.api.transcripts import create_transcripts_router
from hvac_agent.core.config import get_settings
from hvac_agent.core.errors import (
    ConfigurationError,
    configuration_error_handler,
    unhandled_exception_handler,
)
from hvac_agent.core.logging import configure_logging, mask_phone, request_id_middleware
from hvac_agent.core.metrics import MetricsCollector
from hvac_agent.dialogue.controller import BookingController
from hvac_agent.dialogue.policy import policy_from_settings
from hvac_agent.dialogue.types import TurnInput
from hvac_agent.integrations.base import CalendarWriter
from hvac_agent.integrations.calendar import GoogleCalendarWriter
from hvac_agent.integrations.llm import OpenAIChatModel
from hvac_agent.integrations.tts import ElevenLabsSynthesizer
from hvac_agent.memory.store import SQLiteTranscriptStore

settings = get_settings()
logger = logging.getLogger("hvac.app")

policy = policy_from_settings(settings)
transcript_store = SQLiteTranscriptStore(settings.sqlite_path)
metrics = MetricsCollector()


def _build_calendar() -> CalendarWriter | None:
    if not settings.calendar_enabled:
        return None
    try:
        return GoogleCalendarWriter(settings.google_sa_json_base64, settings.google_calendar_id)
    except ConfigurationError as exc:
        logger.error("Calendar disabled: %s", exc)
        return None


language_model = (
    OpenAIChatModel(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        temperature=settings.openai_temperature,
        base_url=settings.openai_base_url,
        timeout=settings.llm_timeout_seconds,
    )
    if settings.openai_api_key
    else None
)
controller = BookingController(policy, llm=language_model, calendar=_build_calendar())
synthesizer = ElevenLabsSynthesizer(settings.eleven_labs_api_key, timeout=settings.tts_timeout_seconds)

app = FastAPI(title=settings.app_name, version="0.1.0", docs_url="/docs")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(request_id_middleware)

app.include_router(create_telephony_router(settings, policy, controller, transcript_store, synthesizer, metrics))
app.include_router(create_transcripts_router(transcript_store))
app.include_router(create_calendar_router(settings, policy))


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Return basic service status for monitoring."""

    return {"status": "ok"}


@app.get("/ready", tags=["health"])
async def readiness_probe() -> dict[str, Any]:
    """Readiness endpoint.

    Checks:
    - Transcript SQLite DB reachable and has expected tables.
    - Which provider credentials are present (never their values).
    """

    store_ok = False
    store_error: str | None = None
    try:
        store_ok = transcript_store.ping()
    except sqlite3.Error as exc:
        store_error = str(exc)

    components: dict[str, dict[str, Any]] = {
        "transcript_db": {
            "path": str(settings.sqlite_path),
            "ok": store_ok,
            **({"error": store_error} if store_error else {}),
        },
        "credentials": {
            "openai_api_key_present": settings.llm_enabled,
            "eleven_labs_api_key_present": settings.tts_enabled,
            "elevenlabs_voice_id_present": bool(settings.elevenlabs_voice_id),
            "google_calendar_present": settings.calendar_enabled,
            "twilio_signature_validation": bool(settings.twilio_auth_token),
        },
    }

    overall = "ok" if store_ok and settings.llm_enabled else ("degraded" if store_ok else "fail")
    return {
        "status": overall,
        "environment": settings.environment,
        "policy_version": policy.version,
        "components": components,
    }


def get_transcript_store() -> SQLiteTranscriptStore:
    """Dependency injector for the transcript store."""

    return transcript_store


@app.get("/calls", tags=["transcripts"])
async def list_calls(store: SQLiteTranscriptStore = Depends(get_transcript_store)) -> list[str]:
    """List known call identifiers (development helper)."""

    return list(store.iter_calls())


@app.post("/turn", tags=["dialogue"])
async def turn(payload: dict) -> dict:
    """Run one booking turn statelessly; the caller carries slots and last question between turns."""

    speech = payload.get("speech")
    if not speech or not isinstance(speech, str):
        raise HTTPException(status_code=400, detail="speech is required")
    if not settings.llm_enabled:
        raise ConfigurationError("OPENAI_API_KEY is not set")

    slots = payload.get("slots")
    history = payload.get("history")
    logger.info("Turn for %s (call %s)", mask_phone(payload.get("caller")), payload.get("call_sid"))
    result = await controller.handle(
        TurnInput(
            utterance=speech,
            call_sid=payload.get("call_sid"),
            caller=payload.get("caller"),
            slots=slots if isinstance(slots, dict) else None,
            last_question=payload.get("last_question"),
            history=[entry for entry in history if isinstance(entry, dict)] if isinstance(history, list) else (),
        )
    )
    metrics.record_turn(result.mode.value, result.source.value, result.done)
    return result.as_payload()


@app.on_event("startup")
async def startup_logging() -> None:
    level = configure_logging(settings.log_level)
    logger.info(
        "Logging configured at %s level for %s environment (policy %s)",
        logging.getLevelName(level),
        settings.environment,
        policy.version,
    )
    if not settings.llm_enabled:
        logger.warning("OPENAI_API_KEY is not set; turns will fall back to scripted prompts")
    if not settings.calendar_enabled:
        logger.warning("Google Calendar is not configured; bookings will not create events")


app.add_exception_handler(ConfigurationError, configuration_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


@app.get("/metrics", tags=["metrics"])
async def metrics_endpoint() -> dict:
    snapshot = metrics.snapshot()
    return {
        "total_turns": snapshot.total_turns,
        "turn_sources": snapshot.turn_sources,
        "dialogue_modes": snapshot.dialogue_modes,
        "bookings": snapshot.bookings,
    }
