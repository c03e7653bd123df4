"""ElevenLabs text-to-speech proxy client."""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

logger = logging.getLogger("hvac.tts")

MAX_TTS_CHARS = 800
ELEVENLABS_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"


class SpeechSynthesisError(RuntimeError):
    """ElevenLabs rejected the request or could not be reached."""

    def __init__(self, message: str, detail: str = "") -> None:
        super().__init__(message)
        self.detail = detail


class ElevenLabsSynthesizer:
    """Turns reply text into an MP3 that Twilio can ``<Play>``."""

    def __init__(
        self,
        api_key: str | None,
        model_id: str = "eleven_multilingual_v2",
        output_format: str = "mp3_44100_128",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self._model_id = model_id
        self._output_format = output_format
        self._timeout = timeout
        self._transport = transport

    async def synthesize(self, text: str, voice_id: str) -> bytes:
        url = ELEVENLABS_URL.format(voice_id=quote(voice_id, safe=""))
        params = {"optimize_streaming_latency": "0", "output_format": self._output_format}
        headers = {
            "accept": "audio/mpeg",
            "content-type": "application/json",
            "xi-api-key": self.api_key,
        }
        body = {
            "text": text[:MAX_TTS_CHARS],
            "model_id": self._model_id,
            "voice_settings": {"stability": 0.5, "similarity_boost": 0.8},
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(url, params=params, headers=headers, json=body)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning("ElevenLabs returned %s", exc.response.status_code)
            raise SpeechSynthesisError("ElevenLabs TTS failed", exc.response.text[:500]) from exc
        except httpx.HTTPError as exc:
            logger.warning("ElevenLabs transport error: %s", exc)
            raise SpeechSynthesisError("TTS proxy error", str(exc)) from exc
        return response.content
