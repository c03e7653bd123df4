"""Confirmation gates, progress prompts and the booking completion check."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping

from .extractors import YesNo, classify_yes_no, phone_for_speech
from .policy import BookingPolicy
from .slots import (
    SlotState,
    address_complete,
    clear_path,
    format_address,
    has_schedule,
    is_null,
    merge_slots,
    missing_fields,
)
from .types import DialogueMode

logger = logging.getLogger("hvac.dialogue")

MODE_FLAGS = {
    DialogueMode.AWAITING_ADDRESS_CONFIRMATION: "address_confirm_pending",
    DialogueMode.AWAITING_PHONE_CONFIRMATION: "phone_confirm_pending",
    DialogueMode.AWAITING_FINAL_CONFIRMATION: "final_confirm_pending",
}

SHORT_FINAL_PROMPT = "Is everything correct?"
WHAT_TO_CHANGE_PROMPT = "No problem. What would you like to change?"
ADDRESS_REPROMPT = "Sorry about that. What's the full service address, including the city and zip code?"
PHONE_REPROMPT = "Sorry about that. What's the best callback number?"

FIELD_PROMPTS = {
    "full_name": "May I have your full name?",
    "callback_number": "What's the best callback number?",
    "service_address": "What's the service address?",
    "service_address.line1": "What's the street address?",
    "service_address.city": "What city is that in?",
    "service_address.zip": "And the zip code?",
    "preferred_schedule": "What day works best for you, morning or afternoon?",
}
WINDOW_PHRASES = {
    "morning": "in the morning",
    "afternoon": "in the afternoon",
    "flexible_all_day": "anytime during the day",
}


@dataclass(slots=True)
class GateOutcome:
    """Result of answering a confirmation prompt.

    ``reply`` is None only for an affirmed final confirmation; the caller books.
    """

    answer: YesNo
    slots: SlotState
    reply: str | None
    reset_field: str | None = None


def current_mode(slots: Mapping[str, Any]) -> DialogueMode:
    for mode, flag in MODE_FLAGS.items():
        if slots.get(flag):
            return mode
    return DialogueMode.NORMAL_CAPTURE


def is_complete(slots: Mapping[str, Any]) -> bool:
    return (
        not is_null(slots.get("full_name"))
        and not is_null(slots.get("callback_number"))
        and address_complete(slots)
        and slots.get("pricing_disclosed") is True
        and has_schedule(slots)
    )


def describe_schedule(slots: Mapping[str, Any]) -> str:
    parts: list[str] = []
    raw_date = slots.get("preferred_date")
    if not is_null(raw_date):
        try:
            parsed = date.fromisoformat(str(raw_date))
        except ValueError:
            parts.append(str(raw_date))
        else:
            parts.append(f"{parsed:%A}, {parsed:%B} {parsed.day}")

    raw_time = slots.get("preferred_time")
    window = slots.get("preferred_window")
    if not is_null(raw_time):
        hour, _, minute = str(raw_time).partition(":")
        try:
            hour_value, minute_value = int(hour), int(minute or 0)
        except ValueError:
            parts.append(f"around {raw_time}")
        else:
            suffix = "AM" if hour_value < 12 else "PM"
            display = hour_value % 12 or 12
            parts.append(f"around {display}:{minute_value:02d} {suffix}")
    elif not is_null(window):
        parts.append(WINDOW_PHRASES.get(str(window), str(window)))
    return " ".join(parts)


def booking_summary(slots: Mapping[str, Any], policy: BookingPolicy) -> str:
    lines = ["Let me read that back."]
    if not is_null(slots.get("full_name")):
        lines.append(f"{slots['full_name']}, at {format_address(slots.get('service_address'))}.")
    if not is_null(slots.get("callback_number")):
        lines.append(f"Callback number {phone_for_speech(str(slots['callback_number']))}.")
    schedule = describe_schedule(slots)
    if schedule:
        lines.append(f"Your visit is {schedule}, and the technician will call ahead.")
    lines.append(SHORT_FINAL_PROMPT)
    return " ".join(lines)


def confirmation_prompt(mode: DialogueMode, slots: Mapping[str, Any], policy: BookingPolicy) -> str:
    if mode is DialogueMode.AWAITING_ADDRESS_CONFIRMATION:
        return f"I have the service address as {format_address(slots.get('service_address'))}. Is that correct?"
    if mode is DialogueMode.AWAITING_PHONE_CONFIRMATION:
        number = str(slots.get("callback_number") or "")
        return f"I have your callback number as {phone_for_speech(number)}. Is that right?"
    if mode is DialogueMode.AWAITING_FINAL_CONFIRMATION:
        return SHORT_FINAL_PROMPT
    return next_prompt(slots, policy)[0]


def request_confirmation(mode: DialogueMode, slots: Mapping[str, Any], policy: BookingPolicy) -> tuple[str, SlotState]:
    """Raise the pending flag for ``mode`` and return the prompt to speak."""

    if mode is DialogueMode.AWAITING_FINAL_CONFIRMATION:
        return enter_final_confirmation(slots, policy)
    updated = merge_slots(slots, {MODE_FLAGS[mode]: True})
    return confirmation_prompt(mode, updated, policy), updated


def enter_final_confirmation(slots: Mapping[str, Any], policy: BookingPolicy) -> tuple[str, SlotState]:
    read_count = int(slots.get("summary_read_count") or 0)
    reply = booking_summary(slots, policy) if read_count == 0 else SHORT_FINAL_PROMPT
    updated = merge_slots(slots, {"final_confirm_pending": True, "summary_read_count": read_count + 1})
    return reply, updated


def next_prompt(slots: Mapping[str, Any], policy: BookingPolicy) -> tuple[str, SlotState]:
    """Prompt for the first missing field.

    The pricing step is the disclosure itself, so speaking it marks
    ``pricing_disclosed`` on the returned slots.
    """

    missing = missing_fields(slots)
    current = merge_slots(slots, {})
    if not missing:
        return SHORT_FINAL_PROMPT, current

    field_name = missing[0]
    if field_name == "service_address":
        address = slots.get("service_address") or {}
        if is_null(address.get("line1")):
            return FIELD_PROMPTS["service_address"], current
        for part in ("city", "zip"):
            if is_null(address.get(part)):
                return FIELD_PROMPTS[f"service_address.{part}"], current
        return FIELD_PROMPTS["service_address"], current
    if field_name == "pricing_disclosed":
        updated = merge_slots(slots, {"pricing_disclosed": True})
        follow_up = FIELD_PROMPTS["preferred_schedule"] if not has_schedule(slots) else SHORT_FINAL_PROMPT
        return f"{policy.pricing_disclosure} {follow_up}", updated
    return FIELD_PROMPTS[field_name], current


def progress(slots: Mapping[str, Any], policy: BookingPolicy) -> tuple[str, SlotState]:
    """Move the call forward: the final read-back when complete, else the next question."""

    reply, updated = next_prompt(slots, policy)
    if is_complete(updated) and current_mode(updated) is DialogueMode.NORMAL_CAPTURE:
        summary, updated = enter_final_confirmation(updated, policy)
        lead = reply.replace(SHORT_FINAL_PROMPT, "").strip()
        return f"{lead} {summary}".strip(), updated
    return reply, updated


def resolve_confirmation(
    mode: DialogueMode,
    utterance: str,
    slots: Mapping[str, Any],
    policy: BookingPolicy,
) -> GateOutcome:
    """Answer a pending confirmation without consulting the language model."""

    flag = MODE_FLAGS[mode]
    answer = classify_yes_no(utterance)

    if answer is YesNo.AFFIRM:
        cleared = merge_slots(slots, {})
        cleared[flag] = False  # type: ignore[literal-required]
        if mode is DialogueMode.AWAITING_FINAL_CONFIRMATION:
            return GateOutcome(answer=answer, slots=cleared, reply=None)
        reply, updated = progress(cleared, policy)
        return GateOutcome(answer=answer, slots=updated, reply=reply)

    if answer is YesNo.NEGATE:
        cleared = merge_slots(slots, {})
        cleared[flag] = False  # type: ignore[literal-required]
        if mode is DialogueMode.AWAITING_ADDRESS_CONFIRMATION:
            reset = clear_path(cleared, "service_address")
            logger.info("Caller rejected the address read-back")
            return GateOutcome(answer=answer, slots=reset, reply=ADDRESS_REPROMPT, reset_field="service_address")
        if mode is DialogueMode.AWAITING_PHONE_CONFIRMATION:
            reset = clear_path(clear_path(cleared, "callback_number"), "phone_partial")
            logger.info("Caller rejected the phone read-back")
            return GateOutcome(answer=answer, slots=reset, reply=PHONE_REPROMPT, reset_field="callback_number")
        cleared["pending_fix"] = {"field": "*", "prompt": WHAT_TO_CHANGE_PROMPT}
        return GateOutcome(answer=answer, slots=cleared, reply=WHAT_TO_CHANGE_PROMPT, reset_field="*")

    return GateOutcome(answer=answer, slots=merge_slots(slots, {}), reply=confirmation_prompt(mode, slots, policy))
