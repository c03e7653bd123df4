"""Pydantic validation for the slot object returned by the language model."""

from __future__ import annotations

import re
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

WINDOW_ALIASES = {
    "morning": "morning",
    "am": "morning",
    "afternoon": "afternoon",
    "pm": "afternoon",
    "evening": "afternoon",
    "flexible_all_day": "flexible_all_day",
    "flexible": "flexible_all_day",
    "all day": "flexible_all_day",
    "anytime": "flexible_all_day",
}
MEMBERSHIP_VALUES = {"member", "non_member", "unknown"}


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class AddressPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    gate_or_entry_notes: Optional[str] = None
    parking_notes: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return _blank_to_none(value) if isinstance(value, str) or value is None else None

    @field_validator("zip")
    @classmethod
    def _five_digits(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        match = re.search(r"\d{5}", value)
        return match.group(0) if match else None

    @field_validator("state")
    @classmethod
    def _upper_state(cls, value: Optional[str]) -> Optional[str]:
        return value.strip().upper() if value and len(value.strip()) == 2 else value


class ThermostatPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    setpoint: Optional[str] = None
    current: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return _blank_to_none(value) if isinstance(value, str) else None


class SlotPayload(BaseModel):
    """Lenient view of the model's ``slots`` object; bad values become null."""

    model_config = ConfigDict(extra="ignore")

    full_name: Optional[str] = None
    callback_number: Optional[str] = None
    service_address: Optional[AddressPayload] = None
    unit_count: Optional[int] = None
    unit_locations: Optional[str] = None
    brand: Optional[str] = None
    symptoms: List[str] = Field(default_factory=list)
    thermostat: Optional[ThermostatPayload] = None
    membership_status: Optional[str] = None
    preferred_date: Optional[str] = None
    preferred_time: Optional[str] = None
    preferred_window: Optional[str] = None
    call_ahead: Optional[bool] = None
    hazards_pets_ants_notes: Optional[str] = None
    pricing_disclosed: Optional[bool] = None
    emergency: Optional[bool] = None

    @field_validator(
        "full_name",
        "callback_number",
        "unit_locations",
        "brand",
        "membership_status",
        "preferred_date",
        "preferred_time",
        "preferred_window",
        "hazards_pets_ants_notes",
        mode="before",
    )
    @classmethod
    def _text(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return _blank_to_none(value) if isinstance(value, str) else None

    @field_validator("service_address", "thermostat", mode="before")
    @classmethod
    def _mapping(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    @field_validator("unit_count", mode="before")
    @classmethod
    def _count(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return int(value) if value > 0 else None
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        return None

    @field_validator("symptoms", mode="before")
    @classmethod
    def _symptom_list(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value] if value.strip() else []
        if isinstance(value, list):
            return [str(item) for item in value if isinstance(item, (str, int, float)) and str(item).strip()]
        return []

    @field_validator("call_ahead", "pricing_disclosed", "emergency", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> Any:
        return value if isinstance(value, bool) else None

    @field_validator("preferred_window")
    @classmethod
    def _window(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return WINDOW_ALIASES.get(value.strip().lower())

    @field_validator("preferred_date")
    @classmethod
    def _iso_date(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value if re.fullmatch(r"\d{4}-\d{2}-\d{2}", value.strip()) else None

    @field_validator("preferred_time")
    @classmethod
    def _clock(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        match = re.fullmatch(r"(\d{1,2}):(\d{2})", value.strip())
        if not match or int(match.group(1)) > 23 or int(match.group(2)) > 59:
            return None
        return f"{int(match.group(1)):02d}:{match.group(2)}"

    @field_validator("membership_status")
    @classmethod
    def _membership(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        normalized = value.strip().lower().replace("-", "_").replace(" ", "_")
        return normalized if normalized in MEMBERSHIP_VALUES else None

    def as_update(self) -> dict[str, Any]:
        """Dump as a merge update; empty nested objects and lists are left to the merger."""

        return self.model_dump(exclude_none=False)


def validate_slot_update(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        return {}
    return SlotPayload.model_validate(raw).as_update()
