from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

# The app reads settings at import time; point it at a scratch database and keep real credentials out.
_SCRATCH = Path(tempfile.mkdtemp(prefix="hvac-tests-"))
os.environ["SQLITE_PATH"] = str(_SCRATCH / "calls.db")
os.environ["OPENAI_API_KEY"] = "test-key"
for _name in (
    "GOOGLE_SA_JSON_BASE64",
    "GOOGLE_CALENDAR_ID",
    "TWILIO_AUTH_TOKEN",
    "PUBLIC_BASE_URL",
    "ELEVEN_LABS_API_KEY",
    "ELEVENLABS_VOICE_ID",
):
    os.environ.pop(_name, None)

from hvac_agent.core.errors import CalendarError  # noqa: E402
from hvac_agent.dialogue.policy import BookingPolicy  # noqa: E402
from hvac_agent.dialogue.slots import empty_slots, merge_slots  # noqa: E402
from hvac_agent.integrations.base import Absent, CalendarWriter, LanguageModel  # noqa: E402


class FakeLanguageModel(LanguageModel):
    """Replays canned results and records the messages it was sent."""

    def __init__(self, *results) -> None:
        self.results = list(results)
        self.calls: list[list[dict]] = []

    async def complete(self, messages):
        self.calls.append([dict(message) for message in messages])
        if not self.results:
            return Absent(reason="exhausted")
        return self.results.pop(0)


class FakeCalendar(CalendarWriter):
    def __init__(self, fail: bool = False, error: Exception | None = None) -> None:
        self.fail = fail
        self.error = error
        self.events: list[dict] = []

    async def insert_event(self, event):
        if self.error is not None:
            raise self.error
        if self.fail:
            raise CalendarError("calendar unavailable")
        self.events.append(dict(event))
        return {"id": f"evt-{len(self.events)}", "htmlLink": "https://calendar.test/evt"}


@pytest.fixture(scope="session")
def fixtures_dir() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def turn_address_payload(fixtures_dir: Path) -> dict:
    return json.loads((fixtures_dir / "turn_address.json").read_text(encoding="utf-8"))


@pytest.fixture
def policy() -> BookingPolicy:
    return BookingPolicy()


@pytest.fixture
def fixed_now() -> datetime:
    # A Wednesday morning.
    return datetime(2024, 10, 16, 10, 0, tzinfo=ZoneInfo("America/New_York"))


@pytest.fixture
def jane_slots():
    return merge_slots(
        empty_slots(),
        {
            "full_name": "Jane Doe",
            "callback_number": "404-444-2544",
            "service_address": {"line1": "123 Main St", "city": "Atlanta", "state": "GA", "zip": "30301"},
            "pricing_disclosed": True,
            "preferred_date": "2024-10-21",
            "preferred_window": "morning",
        },
    )


@pytest.fixture
def fake_llm_factory():
    return FakeLanguageModel


@pytest.fixture
def fake_calendar_factory():
    return FakeCalendar
