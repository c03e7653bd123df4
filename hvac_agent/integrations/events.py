"""Calendar v3 event resources built from a confirmed slot-state."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Any, Mapping

from hvac_agent.dialogue.policy import BookingPolicy
from hvac_agent.dialogue.slots import format_address, is_null


def _appointment_date(slots: Mapping[str, Any], now: datetime) -> date:
    raw = slots.get("preferred_date")
    if not is_null(raw):
        try:
            return date.fromisoformat(str(raw))
        except ValueError:
            pass
    return now.date() + timedelta(days=1)


def appointment_bounds(slots: Mapping[str, Any], policy: BookingPolicy, now: datetime) -> tuple[datetime, datetime]:
    """Start and end of the visit; an explicit time wins over the window."""

    day = _appointment_date(slots, now)
    raw_time = slots.get("preferred_time")
    if not is_null(raw_time):
        try:
            clock = time.fromisoformat(str(raw_time))
        except ValueError:
            clock = None
        if clock is not None:
            start = datetime.combine(day, clock)
            return start, start + timedelta(hours=policy.appointment_hours)

    window = str(slots.get("preferred_window") or "flexible_all_day")
    start_hour, end_hour = policy.windows.get(window, policy.windows["flexible_all_day"])
    return datetime.combine(day, time(start_hour)), datetime.combine(day, time(end_hour))


def _description(slots: Mapping[str, Any]) -> str:
    address = slots.get("service_address") or {}
    thermostat = slots.get("thermostat") or {}
    rows = [
        ("Name", slots.get("full_name")),
        ("Phone", slots.get("callback_number")),
        ("Address", format_address(address)),
        ("Units", slots.get("unit_count")),
        ("Unit locations", slots.get("unit_locations")),
        ("Brand", slots.get("brand")),
        ("Symptoms", ", ".join(slots.get("symptoms") or [])),
        ("Thermostat setpoint", thermostat.get("setpoint")),
        ("Thermostat current", thermostat.get("current")),
        ("Membership", slots.get("membership_status")),
        ("Window", slots.get("preferred_window")),
        ("Call ahead", "yes" if slots.get("call_ahead") is not False else "no"),
        ("Gate / entry", address.get("gate_or_entry_notes")),
        ("Parking", address.get("parking_notes")),
        ("Hazards / pets / ants", slots.get("hazards_pets_ants_notes")),
    ]
    return "\n".join(f"{label}: {value}" for label, value in rows if not is_null(value) and value != "")


def build_event_payload(slots: Mapping[str, Any], policy: BookingPolicy, now: datetime) -> dict[str, Any]:
    start, end = appointment_bounds(slots, policy, now)
    name = slots.get("full_name") or "Caller"
    return {
        "summary": f"{policy.brand} service: {name}",
        "location": format_address(slots.get("service_address")),
        "description": _description(slots),
        "start": {"dateTime": start.isoformat(timespec="seconds"), "timeZone": policy.timezone},
        "end": {"dateTime": end.isoformat(timespec="seconds"), "timeZone": policy.timezone},
        "reminders": {
            "useDefault": False,
            "overrides": [{"method": "popup", "minutes": policy.reminder_minutes}],
        },
    }


def smoke_test_event(policy: BookingPolicy, now: datetime) -> dict[str, Any]:
    """Fixed tomorrow 09:00-10:00 event for the calendar smoke test."""

    day = now.date() + timedelta(days=1)
    return {
        "summary": f"{policy.brand}: test booking",
        "description": "Created by the calendar smoke test route.",
        "location": "Test Address",
        "start": {"dateTime": datetime.combine(day, time(9)).isoformat(timespec="seconds"), "timeZone": policy.timezone},
        "end": {"dateTime": datetime.combine(day, time(10)).isoformat(timespec="seconds"), "timeZone": policy.timezone},
        "reminders": {"useDefault": False, "overrides": [{"method": "popup", "minutes": policy.reminder_minutes}]},
    }
