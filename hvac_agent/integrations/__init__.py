"""External service integrations."""

from .base import Absent, CalendarWriter, ExtractionResult, LanguageModel, Malformed, WellFormed
from .calendar import GoogleCalendarWriter, calendar_diagnostics
from .llm import OpenAIChatModel
from .tts import ElevenLabsSynthesizer, SpeechSynthesisError

__all__ = [
    "Absent",
    "CalendarWriter",
    "ExtractionResult",
    "LanguageModel",
    "Malformed",
    "WellFormed",
    "GoogleCalendarWriter",
    "calendar_diagnostics",
    "OpenAIChatModel",
    "ElevenLabsSynthesizer",
    "SpeechSynthesisError",
]
