"""Application settings and configuration helpers."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strongly-typed configuration sourced from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = Field(default="HVAC Joy Dispatch Line", description="Human-readable service name.")
    environment: str = Field(default="local", description="Deployment environment identifier.")
    log_level: str = Field(default="INFO", description="Application log level.")

    sqlite_path: Path = Field(
        default=Path("db/calls.db"),
        description="Transcript store DB path.",
    )

    openai_api_key: str | None = Field(default=None, description="OpenAI API key for the booking model.")
    openai_model: str = Field(default="gpt-4o-mini", description="Chat completion model name.")
    openai_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of the chat completions API.",
    )
    llm_timeout_seconds: float = Field(
        default=8.0,
        gt=0,
        description="Upper bound for one language-model call before the turn degrades.",
    )

    eleven_labs_api_key: str | None = Field(default=None, description="ElevenLabs API key.")
    elevenlabs_voice_id: str | None = Field(default=None, description="Default ElevenLabs voice.")
    tts_timeout_seconds: float = Field(default=15.0, gt=0)

    google_sa_json_base64: str | None = Field(
        default=None,
        description="Base64-encoded Google service account JSON.",
    )
    google_calendar_id: str | None = Field(default=None, description="Target calendar for bookings.")
    calendar_timeout_seconds: float = Field(default=10.0, gt=0)

    default_tz: str = Field(default="America/New_York", description="Timezone for appointments.")
    default_state: str = Field(default="GA", description="State assumed when the caller omits it.")
    diagnostic_fee: int = Field(default=50, ge=0, description="Diagnostic visit fee per non-working unit.")
    maintenance_fee: int = Field(default=50, ge=0, description="Maintenance visit fee for non-members.")
    policy_version: str = Field(default="joy-2024.09", description="Booking policy descriptor version.")

    public_base_url: AnyHttpUrl | None = Field(
        default=None,
        description="Public URL used to build TTS links. Derived from the request when omitted.",
    )
    twilio_auth_token: str | None = Field(
        default=None,
        description="When set, inbound webhooks must carry a valid X-Twilio-Signature.",
    )

    additional_origins: List[AnyHttpUrl] = Field(
        default_factory=list,
        description="Additional allowed CORS origins for operator dashboards.",
    )

    @property
    def cors_origins(self) -> list[str]:
        """Return the full list of allowed CORS origins."""

        seen: set[str] = set()
        unique: list[str] = []
        for origin in ["http://localhost:3000", *(str(o) for o in self.additional_origins)]:
            base = origin.rstrip("/")
            if base not in seen:
                seen.add(base)
                unique.append(base)
        return unique

    @property
    def llm_enabled(self) -> bool:
        return bool(self.openai_api_key)

    @property
    def tts_enabled(self) -> bool:
        return bool(self.eleven_labs_api_key)

    @property
    def calendar_enabled(self) -> bool:
        return bool(self.google_sa_json_base64 and self.google_calendar_id)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings instance."""

    return Settings()
