"""OpenAI chat-completions client in JSON mode."""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Sequence

import httpx

from .base import Absent, ExtractionResult, LanguageModel, Malformed, WellFormed

logger = logging.getLogger("hvac.llm")


def parse_completion(content: str) -> ExtractionResult:
    """Classify the model's message content as well-formed or malformed."""

    try:
        parsed = json.loads(content)
    except (TypeError, json.JSONDecodeError):
        return Malformed(raw=content or "")
    if not isinstance(parsed, dict):
        return Malformed(raw=content)

    reply = parsed.get("reply")
    slots = parsed.get("slots")
    if not isinstance(reply, str) or not reply.strip():
        return Malformed(raw=content)
    return WellFormed(reply=reply.strip(), slots=slots if isinstance(slots, dict) else {})


class OpenAIChatModel(LanguageModel):
    """Booking model backed by OpenAI chat completions with ``response_format=json_object``."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        temperature: float = 0.3,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 8.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._temperature = temperature
        self._endpoint = base_url.rstrip("/") + "/chat/completions"
        self._timeout = timeout
        self._transport = transport

    async def complete(self, messages: Sequence[Mapping[str, str]]) -> ExtractionResult:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        payload: dict[str, Any] = {
            "model": self._model,
            "temperature": self._temperature,
            "response_format": {"type": "json_object"},
            "messages": [dict(message) for message in messages],
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._endpoint, headers=headers, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException:
            logger.warning("OpenAI request timed out after %.1fs", self._timeout)
            return Absent(reason="timeout")
        except httpx.HTTPStatusError as exc:
            logger.warning("OpenAI returned %s: %s", exc.response.status_code, exc.response.text[:300])
            return Absent(reason=f"status {exc.response.status_code}")
        except httpx.HTTPError as exc:
            logger.warning("OpenAI transport error: %s", exc)
            return Absent(reason="transport")
        except ValueError:
            logger.warning("OpenAI response body was not JSON")
            return Absent(reason="invalid body")

        content = (data.get("choices") or [{}])[0].get("message", {}).get("content") or ""
        result = parse_completion(content)
        if isinstance(result, Malformed):
            logger.warning("OpenAI content was not the expected JSON object: %s", content[:300])
        return result
