from fastapi.testclient import TestClient

from hvac_agent.integrations.base import WellFormed
from hvac_agent.main import app


client = TestClient(app)


def test_turn_confirms_spoken_address(turn_address_payload):
    response = client.post("/turn", json=turn_address_payload)

    assert response.status_code == 200
    payload = response.json()
    assert payload["reply"] == "I have the service address as 123 Main St, Atlanta, GA 30301. Is that correct?"
    assert payload["mode"] == "awaiting_address_confirmation"
    assert payload["needs_confirmation"] is True
    assert payload["source"] == "heuristic"
    assert payload["done"] is False
    assert payload["slots"]["service_address"]["zip"] == "30301"
    assert payload["slots"]["full_name"] == "Jane Doe"

    metrics_response = client.get("/metrics")
    assert metrics_response.status_code == 200
    assert metrics_response.json()["total_turns"] >= 1


def test_turn_missing_speech_returns_400():
    response = client.post("/turn", json={"call_sid": "CA-empty"})

    assert response.status_code == 400
    assert response.json()["detail"] == "speech is required"


def test_turn_without_model_key_is_a_configuration_error(monkeypatch):
    from hvac_agent import main as hvac_main

    monkeypatch.setattr(hvac_main.settings, "openai_api_key", None)

    response = client.post("/turn", json={"speech": "hello"})

    assert response.status_code == 500
    assert response.json()["error"] == "configuration_error"


def test_turn_uses_language_model_reply(monkeypatch, fake_llm_factory):
    from hvac_agent import main as hvac_main

    fake = fake_llm_factory(WellFormed(reply="Got it. May I have your full name?", slots={"brand": "Trane"}))
    monkeypatch.setattr(hvac_main.controller, "llm", fake)

    response = client.post(
        "/turn",
        json={
            "speech": "I have a Trane unit upstairs",
            "call_sid": "CA-turn-llm",
            "history": [{"role": "assistant", "content": "How can I help today?"}, "ignored"],
        },
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["reply"] == "Got it. May I have your full name?"
    assert payload["slots"]["brand"] == "Trane"
    assert payload["source"] == "llm"
    assert fake.calls[0][-2] == {"role": "assistant", "content": "How can I help today?"}


def test_health_and_ready():
    assert client.get("/health").json() == {"status": "ok"}

    ready = client.get("/ready").json()
    assert ready["status"] == "ok"
    assert ready["components"]["transcript_db"]["ok"] is True
    assert ready["components"]["credentials"]["openai_api_key_present"] is True
    assert ready["components"]["credentials"]["google_calendar_present"] is False
