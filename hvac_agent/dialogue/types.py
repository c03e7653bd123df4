"""Turn-level enums and data structures shared by the controller and the API."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Sequence

from .slots import SlotState


class DialogueMode(str, Enum):
    """Which confirmation, if any, the call is waiting on."""

    AWAITING_ADDRESS_CONFIRMATION = "awaiting_address_confirmation"
    AWAITING_PHONE_CONFIRMATION = "awaiting_phone_confirmation"
    AWAITING_FINAL_CONFIRMATION = "awaiting_final_confirmation"
    NORMAL_CAPTURE = "normal_capture"


class TurnSource(str, Enum):
    """What produced the reply for a turn."""

    EMERGENCY = "emergency"
    GATE = "gate"
    FIX = "fix"
    HEURISTIC = "heuristic"
    LLM = "llm"
    FALLBACK = "fallback"
    CLOSING = "closing"


@dataclass(slots=True)
class TurnInput:
    """Everything the controller needs to answer one caller utterance."""

    utterance: str
    call_sid: str | None = None
    caller: str | None = None
    slots: Mapping[str, Any] | None = None
    last_question: str | None = None
    history: Sequence[Mapping[str, str]] = field(default_factory=tuple)
    now: datetime | None = None


@dataclass(slots=True)
class TurnResult:
    reply: str
    slots: SlotState
    done: bool = False
    goodbye: str | None = None
    needs_confirmation: bool = False
    mode: DialogueMode = DialogueMode.NORMAL_CAPTURE
    source: TurnSource = TurnSource.LLM

    def as_payload(self) -> dict[str, Any]:
        return {
            "reply": self.reply,
            "slots": self.slots,
            "done": self.done,
            "goodbye": self.goodbye,
            "needs_confirmation": self.needs_confirmation,
            "mode": self.mode.value,
            "source": self.source.value,
        }
