"""Pytest unit test fixtures."""

import pytest

from hvac_agent.dialogue.controller import BookingController
from hvac_agent.memory.store import SQLiteTranscriptStore


@pytest.fixture()
def transcript_store(tmp_path):
    db_path = tmp_path / "calls.db"
    return SQLiteTranscriptStore(db_path)


@pytest.fixture()
def make_controller(policy, fake_llm_factory, fake_calendar_factory):
    def build(*results, calendar=None):
        llm = fake_llm_factory(*results)
        calendar = calendar if calendar is not None else fake_calendar_factory()
        return BookingController(policy, llm=llm, calendar=calendar)

    return build
