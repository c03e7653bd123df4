import uuid

from fastapi.testclient import TestClient

from hvac_agent.dialogue.gates import enter_final_confirmation
from hvac_agent.integrations.base import WellFormed
from hvac_agent.main import app
from hvac_agent.memory.models import ASSISTANT, TranscriptLine


client = TestClient(app)


def new_call_sid() -> str:
    return f"CA{uuid.uuid4().hex}"


def test_new_call_gets_greeting_gather(policy):
    call_sid = new_call_sid()

    response = client.post("/twilio/webhook", data={"CallSid": call_sid, "From": "+14045550100"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/xml")
    assert "<Gather" in response.text
    assert "http://testserver/tts?text=To+ensure+the+highest+quality+service" in response.text
    assert "reprompt=1" in response.text

    transcript = client.get(f"/transcripts/{call_sid}").json()
    assert transcript["lines"][0]["role"] == "assistant"
    assert transcript["lines"][0]["text"] == policy.greeting
    assert call_sid in client.get("/calls").json()


def test_speech_turn_is_logged_with_slots(monkeypatch, fake_llm_factory):
    from hvac_agent import main as hvac_main

    monkeypatch.setattr(
        hvac_main.controller,
        "llm",
        fake_llm_factory(WellFormed(reply="Thanks, Jane. What's the best callback number?", slots={"full_name": "Jane Doe"})),
    )
    call_sid = new_call_sid()
    client.post("/twilio/webhook", data={"CallSid": call_sid, "From": "+14045550100"})

    response = client.post(
        "/twilio/webhook",
        data={"CallSid": call_sid, "From": "+14045550100", "SpeechResult": "My name is Jane Doe"},
    )

    assert response.status_code == 200
    assert "Thanks%2C+Jane.+What%27s+the+best+callback+number%3F" in response.text
    assert "<Hangup" not in response.text

    lines = client.get(f"/transcripts/{call_sid}").json()["lines"]
    assert [line["role"] for line in lines] == ["assistant", "caller", "assistant"]
    assert lines[1]["text"] == "My name is Jane Doe"
    assert lines[2]["metadata"]["slots"]["full_name"] == "Jane Doe"
    assert lines[2]["metadata"]["done"] is False
    assert lines[1]["turn_index"] == lines[2]["turn_index"] == 1


def test_silence_reprompts_with_last_question():
    call_sid = new_call_sid()
    client.post("/twilio/webhook", data={"CallSid": call_sid, "From": "+14045550100"})

    response = client.post("/twilio/webhook?reprompt=1", data={"CallSid": call_sid})

    assert response.status_code == 200
    assert "tts?text=To+ensure+the+highest+quality+service" in response.text
    assert len(client.get(f"/transcripts/{call_sid}").json()["lines"]) == 1


def test_confirmed_booking_hangs_up(monkeypatch, policy, jane_slots, fake_calendar_factory):
    from hvac_agent import main as hvac_main

    calendar = fake_calendar_factory()
    monkeypatch.setattr(hvac_main.controller, "calendar", calendar)
    call_sid = new_call_sid()
    summary, slots = enter_final_confirmation(jane_slots, policy)
    hvac_main.transcript_store.append_line(
        TranscriptLine(call_sid=call_sid, role=ASSISTANT, text=summary, turn_index=4, metadata={"slots": slots})
    )

    response = client.post(
        "/twilio/webhook",
        data={"CallSid": call_sid, "From": "+14045550100", "SpeechResult": "Yes, that's correct."},
    )

    assert response.status_code == 200
    assert response.text.count("<Play>") == 2
    assert "<Hangup" in response.text
    assert len(calendar.events) == 1

    last = client.get(f"/transcripts/{call_sid}").json()["lines"][-1]
    assert last["metadata"]["done"] is True
    assert last["metadata"]["slots"]["booked"] is True
    assert last["metadata"]["goodbye"] == policy.goodbye


def test_turn_failure_apologises_and_hangs_up(monkeypatch):
    from hvac_agent import main as hvac_main

    async def broken_handle(turn):
        raise RuntimeError("controller exploded")

    monkeypatch.setattr(hvac_main.controller, "handle", broken_handle)

    response = client.post(
        "/twilio/webhook",
        data={"CallSid": new_call_sid(), "From": "+14045550100", "SpeechResult": "hello"},
    )

    assert response.status_code == 200
    assert "tts?text=I%27m+having+trouble+right+now" in response.text
    assert "<Hangup" in response.text


def test_signature_required_when_auth_token_configured(monkeypatch):
    from hvac_agent import main as hvac_main

    monkeypatch.setattr(hvac_main.settings, "twilio_auth_token", "twilio-secret")

    response = client.post("/twilio/webhook", data={"CallSid": new_call_sid()})

    assert response.status_code == 403
