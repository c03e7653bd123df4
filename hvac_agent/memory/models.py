"""Dataclasses representing transcript lines and per-call snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from hvac_agent.dialogue.slots import SlotState

CALLER = "caller"
ASSISTANT = "assistant"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class TranscriptLine:
    """Single utterance stored in the append-only transcript log."""

    call_sid: str | None
    role: str
    text: str
    turn_index: int | None = None
    caller_phone: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class CallSnapshot:
    """State of one call reconstructed from its transcript."""

    call_sid: str
    lines: list[TranscriptLine]
    slots: SlotState
    last_question: str | None = None

    @property
    def next_turn_index(self) -> int:
        indexes = [line.turn_index for line in self.lines if line.turn_index is not None]
        return max(indexes) + 1 if indexes else 0


@dataclass(slots=True)
class CallRecord:
    """Call-level summary row (provider metadata, full transcript, AI summary)."""

    source: str = "twilio"
    call_sid: str | None = None
    from_number: str | None = None
    to_number: str | None = None
    direction: str | None = None
    status: str | None = None
    transcript: str | None = None
    ai_summary: str | None = None
    meta: dict[str, Any] | None = None
