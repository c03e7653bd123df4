from fastapi.testclient import TestClient

from hvac_agent.integrations.tts import SpeechSynthesisError
from hvac_agent.main import app


client = TestClient(app)


def test_tts_requires_key_text_and_voice():
    response = client.get("/tts", params={"text": "hello"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Missing text, voiceId, or API key"


def test_tts_proxies_audio(monkeypatch):
    from hvac_agent import main as hvac_main

    requests = []

    async def fake_synthesize(text, voice_id):
        requests.append((text, voice_id))
        return b"ID3fake-mp3"

    monkeypatch.setattr(hvac_main.synthesizer, "api_key", "el-test")
    monkeypatch.setattr(hvac_main.synthesizer, "synthesize", fake_synthesize)

    response = client.get("/tts", params={"text": "How can I help today?", "voiceId": "voice-1"})

    assert response.status_code == 200
    assert response.headers["content-type"] == "audio/mpeg"
    assert response.content == b"ID3fake-mp3"
    assert requests == [("How can I help today?", "voice-1")]


def test_tts_upstream_failure_is_502(monkeypatch):
    from hvac_agent import main as hvac_main

    async def failing_synthesize(text, voice_id):
        raise SpeechSynthesisError("ElevenLabs TTS failed", "quota exceeded")

    monkeypatch.setattr(hvac_main.synthesizer, "api_key", "el-test")
    monkeypatch.setattr(hvac_main.synthesizer, "synthesize", failing_synthesize)

    response = client.get("/tts", params={"text": "hello", "voiceId": "voice-1"})

    assert response.status_code == 502
    assert response.json()["detail"] == {"error": "ElevenLabs TTS failed", "detail": "quota exceeded"}


def test_calendar_routes_report_missing_credentials():
    diag = client.get("/calendar/diag")
    booking = client.get("/calendar/test-booking")

    assert diag.status_code == 500
    assert diag.json()["error"] == "configuration_error"
    assert booking.status_code == 500
    assert booking.json()["error"] == "configuration_error"
