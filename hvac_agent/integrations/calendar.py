"""Google Calendar v3 writer and read-only diagnostics via a service account."""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from hvac_agent.core.errors import CalendarError, ConfigurationError

from .base import CalendarWriter

logger = logging.getLogger("hvac.calendar")

# Credential refresh and transport failures surface outside HttpError.
CLIENT_ERRORS = (HttpError, GoogleAuthError, httplib2.HttpLib2Error, OSError, ValueError)

WRITE_SCOPES = ["https://www.googleapis.com/auth/calendar"]
READONLY_SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]


def decode_service_account(encoded: str | None) -> dict[str, Any]:
    """Decode the base64 service-account JSON and repair escaped key newlines."""

    if not encoded:
        raise ConfigurationError("GOOGLE_SA_JSON_BASE64 is not set")
    try:
        info = json.loads(base64.b64decode(encoded).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ConfigurationError("GOOGLE_SA_JSON_BASE64 is not valid base64 JSON") from exc
    if not isinstance(info, dict):
        raise ConfigurationError("GOOGLE_SA_JSON_BASE64 does not hold a JSON object")

    private_key = info.get("private_key") or ""
    if "\\n" in private_key:
        info["private_key"] = private_key.replace("\\n", "\n")
    return info


def _calendar_service(info: Mapping[str, Any], scopes: list[str]):
    credentials = service_account.Credentials.from_service_account_info(dict(info), scopes=scopes)
    return build("calendar", "v3", credentials=credentials, cache_discovery=False)


class GoogleCalendarWriter(CalendarWriter):
    """Inserts booking events into one shared calendar."""

    def __init__(self, service_account_b64: str | None, calendar_id: str | None) -> None:
        if not calendar_id:
            raise ConfigurationError("GOOGLE_CALENDAR_ID is not set")
        self.calendar_id = calendar_id
        self._info = decode_service_account(service_account_b64)
        self._service = None

    @property
    def service_account_email(self) -> str | None:
        return self._info.get("client_email")

    def _ensure_service(self):
        if self._service is None:
            self._service = _calendar_service(self._info, WRITE_SCOPES)
        return self._service

    def _insert(self, event: Mapping[str, Any]) -> dict[str, Any]:
        try:
            created = (
                self._ensure_service()
                .events()
                .insert(calendarId=self.calendar_id, body=dict(event), supportsAttachments=False)
                .execute()
            )
        except CLIENT_ERRORS as exc:
            raise CalendarError(f"Calendar insert failed: {exc}") from exc
        logger.info("Created calendar event %s", created.get("id"))
        return {"id": created.get("id"), "htmlLink": created.get("htmlLink")}

    async def insert_event(self, event: Mapping[str, Any]) -> dict[str, Any]:
        # The Google client is synchronous; keep it off the event loop.
        return await asyncio.to_thread(self._insert, event)


def _event_summary(item: Mapping[str, Any]) -> dict[str, Any]:
    start = item.get("start") or {}
    end = item.get("end") or {}
    return {
        "id": item.get("id"),
        "summary": item.get("summary") or "(no title)",
        "start": start.get("dateTime") or start.get("date"),
        "end": end.get("dateTime") or end.get("date"),
        "location": item.get("location"),
    }


def calendar_diagnostics(
    service_account_b64: str | None,
    calendar_id: str | None,
    default_tz: str,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Read-only view of what the service account can see."""

    info = decode_service_account(service_account_b64)
    service = _calendar_service(info, READONLY_SCOPES)
    try:
        listing = service.calendarList().list().execute()
    except CLIENT_ERRORS as exc:
        raise CalendarError(f"Calendar list failed: {exc}") from exc

    visible = [
        {
            "id": item.get("id"),
            "summary": item.get("summary"),
            "accessRole": item.get("accessRole"),
            "timeZone": item.get("timeZone"),
        }
        for item in listing.get("items", [])
    ]

    calendar_check: dict[str, Any] | None = None
    upcoming: list[dict[str, Any]] = []
    if calendar_id:
        time_min = (now or datetime.now(timezone.utc)).isoformat()
        try:
            meta = service.calendars().get(calendarId=calendar_id).execute()
            calendar_check = {
                "id": meta.get("id"),
                "summary": meta.get("summary"),
                "timeZone": meta.get("timeZone"),
            }
            events = (
                service.events()
                .list(calendarId=calendar_id, timeMin=time_min, singleEvents=True, orderBy="startTime", maxResults=5)
                .execute()
            )
            upcoming = [_event_summary(item) for item in events.get("items", [])]
        except CLIENT_ERRORS as exc:
            logger.warning("Configured calendar %s is not readable: %s", calendar_id, exc)
            calendar_check = {"error": str(exc)}

    return {
        "ok": True,
        "serviceAccount": info.get("client_email"),
        "defaultTimeZone": default_tz,
        "calendarsVisible": visible,
        "expectCalendarId": calendar_id,
        "calendarCheck": calendar_check,
        "upcoming": upcoming,
        "notes": [
            "Share the target calendar with the service account email above (Make changes to events) for booking.",
        ],
    }
