from fastapi.testclient import TestClient

from hvac_agent.main import app


client = TestClient(app)


def test_openapi_contains_expected_paths():
    response = client.get("/openapi.json")
    assert response.status_code == 200
    schema = response.json()
    paths = schema.get("paths", {})

    expected = [
        "/turn",
        "/twilio/webhook",
        "/tts",
        "/transcripts",
        "/transcripts/log",
        "/transcripts/{call_sid}",
        "/calendar/diag",
        "/calendar/test-booking",
        "/calls",
        "/health",
        "/ready",
    ]

    for path in expected:
        assert path in paths, f"Missing {path} from OpenAPI paths"

    assert "post" in paths["/turn"]
    assert "post" in paths["/twilio/webhook"]
    assert "get" in paths["/tts"]
