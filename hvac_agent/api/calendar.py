"""Calendar diagnostics and smoke-test booking routes."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from zoneinfo import ZoneInfo

from fastapi import APIRouter, HTTPException

from hvac_agent.core.config import Settings
from hvac_agent.core.errors import CalendarError, ConfigurationError
from hvac_agent.dialogue.policy import BookingPolicy
from hvac_agent.integrations.calendar import GoogleCalendarWriter, calendar_diagnostics
from hvac_agent.integrations.events import smoke_test_event

logger = logging.getLogger("hvac.calendar")


def create_calendar_router(settings: Settings, policy: BookingPolicy) -> APIRouter:
    router = APIRouter(prefix="/calendar", tags=["calendar"])

    @router.get("/diag")
    async def diagnostics() -> dict:
        if not settings.google_sa_json_base64:
            raise ConfigurationError("GOOGLE_SA_JSON_BASE64 is not set")
        try:
            return await asyncio.to_thread(
                calendar_diagnostics,
                settings.google_sa_json_base64,
                settings.google_calendar_id,
                settings.default_tz,
            )
        except CalendarError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc

    @router.get("/test-booking")
    async def test_booking() -> dict:
        writer = GoogleCalendarWriter(settings.google_sa_json_base64, settings.google_calendar_id)
        event = smoke_test_event(policy, datetime.now(ZoneInfo(policy.timezone)))
        try:
            created = await writer.insert_event(event)
        except CalendarError as exc:
            logger.error("Smoke-test booking failed: %s", exc)
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return {"ok": True, "id": created.get("id"), "htmlLink": created.get("htmlLink")}

    return router
