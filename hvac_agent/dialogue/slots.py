"""Booking slot schema and the merge rules that carry it across turns."""

from __future__ import annotations

import copy
from typing import Any, Mapping, TypedDict


class Address(TypedDict, total=False):
    line1: str | None
    line2: str | None
    city: str | None
    state: str | None
    zip: str | None
    gate_or_entry_notes: str | None
    parking_notes: str | None


class Thermostat(TypedDict, total=False):
    setpoint: str | None
    current: str | None


class PendingFix(TypedDict):
    """A correction waiting for its value. ``field`` is a dotted slot path or ``"*"``."""

    field: str
    prompt: str


class SlotState(TypedDict, total=False):
    """Conversation memory for one call."""

    full_name: str | None
    callback_number: str | None
    service_address: Address
    unit_count: int | None
    unit_locations: str | None
    brand: str | None
    symptoms: list[str]
    thermostat: Thermostat
    membership_status: str | None
    preferred_date: str | None
    preferred_time: str | None
    preferred_window: str | None
    call_ahead: bool | None
    hazards_pets_ants_notes: str | None
    pricing_disclosed: bool
    emergency: bool

    # transient control flags, owned by the controller
    pending_fix: PendingFix | None
    address_confirm_pending: bool
    phone_confirm_pending: bool
    final_confirm_pending: bool
    summary_read_count: int
    phone_partial: str | None
    booked: bool
    calendar_event_id: str | None


ADDRESS_FIELDS = ("line1", "line2", "city", "state", "zip", "gate_or_entry_notes", "parking_notes")
REQUIRED_ADDRESS_FIELDS = ("line1", "city", "state", "zip")
NESTED_FIELDS = ("service_address", "thermostat")
LIST_FIELDS = ("symptoms",)
# Flags that only ever turn on; a later ``false`` from the model must not undo a disclosure.
MONOTONIC_FLAGS = ("pricing_disclosed", "emergency")

# Fields the language model is allowed to update.
CAPTURE_FIELDS = (
    "full_name",
    "callback_number",
    "service_address",
    "unit_count",
    "unit_locations",
    "brand",
    "symptoms",
    "thermostat",
    "membership_status",
    "preferred_date",
    "preferred_time",
    "preferred_window",
    "call_ahead",
    "hazards_pets_ants_notes",
    "pricing_disclosed",
    "emergency",
)


def empty_slots() -> SlotState:
    return SlotState(
        full_name=None,
        callback_number=None,
        service_address=Address(
            line1=None,
            line2=None,
            city=None,
            state=None,
            zip=None,
            gate_or_entry_notes=None,
            parking_notes=None,
        ),
        unit_count=None,
        unit_locations=None,
        brand=None,
        symptoms=[],
        thermostat=Thermostat(setpoint=None, current=None),
        membership_status=None,
        preferred_date=None,
        preferred_time=None,
        preferred_window=None,
        call_ahead=None,
        hazards_pets_ants_notes=None,
        pricing_disclosed=False,
        emergency=False,
        pending_fix=None,
        address_confirm_pending=False,
        phone_confirm_pending=False,
        final_confirm_pending=False,
        summary_read_count=0,
        phone_partial=None,
        booked=False,
        calendar_event_id=None,
    )


def is_null(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def merge_slots(previous: Mapping[str, Any] | None, update: Mapping[str, Any] | None) -> SlotState:
    """Combine ``previous`` with a partial ``update``, preferring non-null new values.

    Nested mappings merge field by field under the same rule. Lists are
    replaced only when the update carries a non-empty list. Neither input is
    modified.
    """

    merged: dict[str, Any] = copy.deepcopy(dict(previous or {}))
    for key, new_value in (update or {}).items():
        old_value = merged.get(key)
        if key in MONOTONIC_FLAGS:
            merged[key] = bool(old_value) or bool(new_value)
        elif isinstance(new_value, Mapping):
            base = old_value if isinstance(old_value, Mapping) else {}
            merged[key] = merge_slots(base, new_value)
        elif isinstance(new_value, list):
            if new_value:
                merged[key] = list(new_value)
            elif key not in merged:
                merged[key] = []
        elif not is_null(new_value):
            merged[key] = new_value
        elif key not in merged:
            merged[key] = None
    return merged  # type: ignore[return-value]


def get_path(slots: Mapping[str, Any], path: str) -> Any:
    node: Any = slots
    for part in path.split("."):
        if not isinstance(node, Mapping):
            return None
        node = node.get(part)
    return node


def set_path(slots: SlotState, path: str, value: Any) -> SlotState:
    """Return a copy of ``slots`` with ``path`` overwritten, even by a null value."""

    result: dict[str, Any] = copy.deepcopy(dict(slots))
    parts = path.split(".")
    node = result
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[parts[-1]] = value
    return result  # type: ignore[return-value]


def clear_path(slots: SlotState, path: str) -> SlotState:
    if path == "service_address":
        cleared = set_path(slots, "service_address", {})
        for name in ADDRESS_FIELDS:
            cleared = set_path(cleared, f"service_address.{name}", None)
        return cleared
    if path == "preferred_schedule":
        cleared = set_path(slots, "preferred_date", None)
        cleared = set_path(cleared, "preferred_time", None)
        return set_path(cleared, "preferred_window", None)
    return set_path(slots, path, None)


def address_complete(slots: Mapping[str, Any]) -> bool:
    address = slots.get("service_address") or {}
    return all(not is_null(address.get(name)) for name in REQUIRED_ADDRESS_FIELDS)


def has_schedule(slots: Mapping[str, Any]) -> bool:
    return not is_null(slots.get("preferred_date")) or not is_null(slots.get("preferred_window"))


def missing_fields(slots: Mapping[str, Any]) -> list[str]:
    """Required booking fields still missing, in the order they are asked."""

    missing: list[str] = []
    if is_null(slots.get("full_name")):
        missing.append("full_name")
    if is_null(slots.get("callback_number")):
        missing.append("callback_number")
    if not address_complete(slots):
        missing.append("service_address")
    if slots.get("pricing_disclosed") is not True:
        missing.append("pricing_disclosed")
    if not has_schedule(slots):
        missing.append("preferred_schedule")
    return missing


def format_address(address: Mapping[str, Any] | None) -> str:
    if not address:
        return ""
    street = ", ".join(
        part for part in (address.get("line1"), address.get("line2")) if not is_null(part)
    )
    region = " ".join(part for part in (address.get("state"), address.get("zip")) if not is_null(part))
    return ", ".join(part for part in (street, address.get("city"), region) if not is_null(part))
