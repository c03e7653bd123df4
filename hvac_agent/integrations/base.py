"""Interfaces for the external services the booking controller talks to."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Sequence, Union

from hvac_agent.dialogue.policy import BookingPolicy

from .events import build_event_payload


@dataclass(slots=True, frozen=True)
class WellFormed:
    """The model answered with a reply and a slot object."""

    reply: str
    slots: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class Malformed:
    """The model answered, but not with the JSON we asked for."""

    raw: str


@dataclass(slots=True, frozen=True)
class Absent:
    """No usable answer: timeout, error status, transport failure or no credentials."""

    reason: str


ExtractionResult = Union[WellFormed, Malformed, Absent]


class LanguageModel(ABC):
    """Chat model that returns a spoken reply plus a slot update."""

    @abstractmethod
    async def complete(self, messages: Sequence[Mapping[str, str]]) -> ExtractionResult:
        """Run one completion. Implementations report failures as ``Absent`` instead of raising."""


class CalendarWriter(ABC):
    """Destination for confirmed bookings."""

    @abstractmethod
    async def insert_event(self, event: Mapping[str, Any]) -> dict[str, Any]:
        """Create ``event`` and return at least ``{"id", "htmlLink"}``. Raises ``CalendarError``."""

    async def book(self, slots: Mapping[str, Any], policy: BookingPolicy, now: datetime) -> dict[str, Any]:
        return await self.insert_event(build_event_payload(slots, policy, now))
